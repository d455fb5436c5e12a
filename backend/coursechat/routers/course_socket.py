"""WebSocket entry path for course channels.

Protocol:
    1. Client connects to ``/ws/courses?token=<jwt>`` (or sends a bearer
       ``Authorization`` header). Invalid credentials close the socket with
       1008 before it is accepted.
    2. Server subscribes the socket to every course the user teaches or is
       enrolled in and sends ``{"event": "ready", "data": {...}}``.
    3. Client sends ``{"event": "course_message", "ack": ..., "data": {...}}``;
       the server persists, fans out to the course (including this socket) and
       answers with ``{"event": "ack", "ack": ..., "status": "ok" | "error"}``.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from coursechat.core.deps import resolve_user
from coursechat.core.errors import CourseChatError, InvalidInputError, ServiceUnavailableError
from coursechat.core.observability import socket_connections
from coursechat.core.settings import Settings
from coursechat.schemas.message import CreateMessageResult, SocketFrame, SocketMessageIn
from coursechat.services.broadcast import CourseBroadcaster
from coursechat.services.membership import check_membership, course_ids_for_user
from coursechat.services.messages import create_text_message
from coursechat.shared.contracts import API_PREFIXES

logger = logging.getLogger(__name__)

router = APIRouter(tags=["socket"])

EVENT_COURSE_MESSAGE = "course_message"


def _token_from(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token
    auth_header = websocket.headers.get("authorization") or ""
    if auth_header.lower().startswith("bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return None


def _authenticate(
    session_factory: sessionmaker[Session], token: Optional[str], settings: Settings
) -> tuple[int, list[int]]:
    with session_factory() as db:
        user = resolve_user(db, token, settings)
        return user.id, course_ids_for_user(db, user.id)


def _create_message(
    session_factory: sessionmaker[Session], user_id: int, message_in: SocketMessageIn
) -> CreateMessageResult:
    with session_factory() as db:
        check_membership(db, message_in.course_id, user_id)
        return create_text_message(
            db,
            course_id=message_in.course_id,
            sender_id=user_id,
            content=message_in.content,
            parent_message_id=message_in.parent_message_id,
        )


def _error_ack(ack: Any, exc: CourseChatError) -> dict[str, Any]:
    return {"event": "ack", "ack": ack, "status": "error", "code": exc.code, "message": exc.message}


async def _handle_frame(
    websocket: WebSocket,
    raw: str,
    *,
    user_id: int,
    session_factory: sessionmaker[Session],
    broadcaster: CourseBroadcaster,
) -> None:
    try:
        frame = SocketFrame.model_validate_json(raw)
    except ValidationError:
        await websocket.send_json(_error_ack(None, InvalidInputError("Malformed frame")))
        return

    if frame.event != EVENT_COURSE_MESSAGE:
        await websocket.send_json(_error_ack(frame.ack, InvalidInputError(f"Unknown event: {frame.event}")))
        return

    try:
        message_in = SocketMessageIn.model_validate(frame.data)
        result = await run_in_threadpool(_create_message, session_factory, user_id, message_in)
    except ValidationError:
        await websocket.send_json(_error_ack(frame.ack, InvalidInputError("Invalid course_message payload")))
        return
    except CourseChatError as exc:
        await websocket.send_json(_error_ack(frame.ack, exc))
        return
    except SQLAlchemyError:
        logger.exception("socket_storage_error", extra={"user_id": user_id})
        await websocket.send_json(_error_ack(frame.ack, ServiceUnavailableError()))
        return

    await broadcaster.publish_created(result)
    await websocket.send_json(
        {"event": "ack", "ack": frame.ack, "status": "ok", "data": result.model_dump(mode="json")}
    )


@router.websocket(API_PREFIXES["socket"])
async def course_socket(websocket: WebSocket) -> None:
    state = websocket.app.state
    settings: Settings = state.settings
    session_factory: sessionmaker[Session] = state.session_factory
    broadcaster: CourseBroadcaster = state.broadcaster

    try:
        user_id, course_ids = await run_in_threadpool(
            _authenticate, session_factory, _token_from(websocket), settings
        )
    except CourseChatError as exc:
        logger.info("socket_rejected", extra={"event": exc.code})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    broadcaster.subscribe(websocket, course_ids)
    socket_connections.inc()
    logger.info("socket_connected", extra={"user_id": user_id})

    try:
        await websocket.send_json({"event": "ready", "data": {"user_id": user_id, "course_ids": course_ids}})
        while True:
            raw = await websocket.receive_text()
            await _handle_frame(
                websocket,
                raw,
                user_id=user_id,
                session_factory=session_factory,
                broadcaster=broadcaster,
            )
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.unsubscribe(websocket)
        socket_connections.dec()
        logger.info("socket_disconnected", extra={"user_id": user_id})
