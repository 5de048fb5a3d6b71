"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
This allows tests to import modules without requiring all environment
variables to be configured upfront.
"""

from fastapi import APIRouter

from kivendi.api.routes.admin import router as admin_router
from kivendi.api.routes.boosts import router as boosts_router
from kivendi.api.routes.conversations import router as conversations_router
from kivendi.api.routes.device_tokens import router as device_tokens_router
from kivendi.api.routes.health import router as health_router
from kivendi.api.routes.me import router as me_router
from kivendi.api.routes.notifications import router as notifications_router
from kivendi.api.routes.webhooks import router as webhooks_router
from kivendi.api.routes.ws import router as ws_router

API_PREFIX = "/api/v1"


def create_api_router() -> APIRouter:
    """Create and configure the API router.

    REST routes live under /api/v1; /health and the /ws sockets stay at
    the root.

    Returns:
        Configured APIRouter with all routes registered.
    """
    v1 = APIRouter(prefix=API_PREFIX)
    v1.include_router(conversations_router)
    v1.include_router(me_router)
    v1.include_router(boosts_router)
    v1.include_router(webhooks_router)
    v1.include_router(notifications_router)
    v1.include_router(device_tokens_router)
    v1.include_router(admin_router)

    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(v1)
    api_router.include_router(ws_router)
    return api_router


__all__ = ["API_PREFIX", "create_api_router"]
