"""FastAPI dependencies for route handlers.

Common dependencies like database sessions, settings and the shared
outbound collaborators. Collaborators are created once in the app lifespan
and read from app.state, so tests can swap any of them through
app.dependency_overrides.
"""

from fastapi import BackgroundTasks, Request

from kivendi.background import Schedule
from kivendi.config import Settings, get_settings
from kivendi.db.session import get_db
from kivendi.payments.kkiapay import PaymentGateway
from kivendi.push.transport import PushTransport
from kivendi.storage.client import ObjectStoreBase

__all__ = [
    "get_app_settings",
    "get_db",
    "get_object_store",
    "get_payment_gateway",
    "get_push_transport",
    "get_schedule",
]


def get_app_settings() -> Settings:
    return get_settings()


def get_payment_gateway(request: Request) -> PaymentGateway:
    """Shared payment gateway client (owns a pooled httpx client)."""
    return request.app.state.payment_gateway


def get_push_transport(request: Request) -> PushTransport:
    return request.app.state.push_transport


def get_object_store(request: Request) -> ObjectStoreBase:
    return request.app.state.object_store


def get_schedule(background_tasks: BackgroundTasks) -> Schedule:
    """Post-response scheduling for best-effort work (push, image cleanup)."""
    return background_tasks.add_task
