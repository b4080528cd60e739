"""Route registration for the Dextra API."""

from fastapi import FastAPI

from .actions import router as actions_router
from .chat import router as chat_router
from .cron import router as cron_router


def register_routes(app: FastAPI):
    app.include_router(chat_router)
    app.include_router(actions_router)
    app.include_router(cron_router)
