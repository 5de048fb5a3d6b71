"""Database module for Kivendi.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from kivendi.db.engine import create_db_engine, get_engine
from kivendi.db.models import (
    AccountType,
    Ad,
    AdBoost,
    Admin,
    Base,
    BoostOffer,
    Category,
    Conversation,
    DeviceToken,
    DeviceType,
    Message,
    MessageType,
    Notification,
    NotificationPreference,
    PaymentRecord,
    PaymentStatus,
    Report,
    ReportStatus,
    StaffRole,
    SubCategory,
    User,
    UserBlock,
)
from kivendi.db.session import get_db, open_session, transaction

__all__ = [
    # Engine and session
    "create_db_engine",
    "get_engine",
    "get_db",
    "open_session",
    "transaction",
    # Base
    "Base",
    # Enums
    "AccountType",
    "DeviceType",
    "MessageType",
    "PaymentStatus",
    "ReportStatus",
    "StaffRole",
    # Models
    "Ad",
    "AdBoost",
    "Admin",
    "BoostOffer",
    "Category",
    "Conversation",
    "DeviceToken",
    "Message",
    "Notification",
    "NotificationPreference",
    "PaymentRecord",
    "Report",
    "SubCategory",
    "User",
    "UserBlock",
]
