from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import Depends, Request, Security
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from coursechat.core.errors import ForbiddenError, UnauthenticatedError
from coursechat.core.security import user_id_from_token
from coursechat.core.settings import Settings
from coursechat.db.session import get_db
from coursechat.models.user import User
from coursechat.services.broadcast import CourseBroadcaster

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)
logger = logging.getLogger("security")


def _log_auth_event(event: str, *, request: Request, extra: Optional[dict] = None) -> None:
    payload = {
        "event": event,
        "request_id": request.headers.get("x-request-id"),
        "path": request.url.path,
        "method": request.method,
        "client": request.client.host if request.client else None,
    }
    if extra:
        payload.update(extra)
    logger.info(json.dumps(payload, default=str))


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_broadcaster(request: Request) -> CourseBroadcaster:
    return request.app.state.broadcaster


def resolve_user(db: Session, token: Optional[str], settings: Settings) -> User:
    """Authenticate a bearer token and return the active user it names."""
    if not token:
        raise UnauthenticatedError("Authorization header missing")
    user_id = user_id_from_token(token, settings)
    user = db.get(User, user_id)
    if user is None:
        raise UnauthenticatedError("User not found")
    if user.is_banned:
        raise ForbiddenError("Account is banned")
    return user


def get_current_user(
    request: Request,
    token: Optional[str] = Security(oauth2_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User:
    try:
        return resolve_user(db, token, settings)
    except (UnauthenticatedError, ForbiddenError) as exc:
        _log_auth_event("auth_rejected", request=request, extra={"reason": exc.message})
        raise
