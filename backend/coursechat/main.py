"""Application factory.

Run with ``uvicorn coursechat.main:create_app --factory``. The engine, session
factory and broadcaster are built here and handed to handlers through
``app.state``; nothing is created at import time.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError

from coursechat.core.deps import get_settings
from coursechat.core.errors import install_exception_handlers
from coursechat.core.logging import RequestLoggingMiddleware, configure_logging
from coursechat.core.observability import PrometheusMiddleware, metrics_endpoint
from coursechat.core.settings import Settings, get_settings as load_settings
from coursechat.db.session import build_engine, build_session_factory
from coursechat.modules.router_registry import include_all_routers
from coursechat.services.broadcast import CourseBroadcaster

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, engine: Optional[Engine] = None) -> FastAPI:
    settings = settings or load_settings()
    settings.check_production_safety()
    configure_logging(level=settings.log_level)

    engine = engine or build_engine(settings)

    app = FastAPI(title=settings.project_name, version=settings.project_version)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.broadcaster = CourseBroadcaster(send_timeout=settings.broadcast_send_timeout_seconds)

    # Always allow localhost during development (Vite often changes ports).
    allow_origin_regex = None
    if not settings.is_production:
        allow_origin_regex = r"^http://(localhost|127\.0\.0\.1)(:\d+)?$"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allow_origins,
        allow_origin_regex=allow_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["observability"], include_in_schema=False)

    install_exception_handlers(app)
    include_all_routers(app)
    _add_health_routes(app)
    return app


def _add_health_routes(app: FastAPI) -> None:
    @app.get("/healthz", tags=["health"])
    def healthcheck() -> dict[str, str]:
        """Database ping; 503 when storage is unreachable."""
        try:
            with app.state.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.error(f"Healthcheck failed: {exc}", exc_info=True)
            raise HTTPException(status_code=503, detail="Service unavailable") from exc
        return {"status": "ok", "database": "ok"}

    @app.get("/readyz", tags=["health"])
    def readiness(settings: Settings = Depends(get_settings)) -> dict[str, str]:
        return {"status": "ready", "env": "prod" if settings.is_production else "dev"}
