"""Central router registry for module-oriented composition."""
from __future__ import annotations

from fastapi import FastAPI

from coursechat.modules.messaging.router import ROUTERS as MESSAGING_ROUTERS

ALL_ROUTERS = MESSAGING_ROUTERS


def include_all_routers(app: FastAPI) -> None:
    for router in ALL_ROUTERS:
        app.include_router(router)
