"""SQLAlchemy ORM models for Kivendi.

Defines all database tables using SQLAlchemy 2.x declarative patterns.
Enumerated columns are stored as text guarded by CHECK constraints; the
Python enums below are the single source of the allowed values.

Rows reference each other by id only. Joins are resolved at read time in
the service layer, so models carry no relationship graph; deletes cascade
through ON DELETE rules in the database.
"""

from datetime import UTC, datetime
from enum import Enum as PyEnum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    PrimaryKeyConstraint,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always round-trips as UTC.

    PostgreSQL stores TIMESTAMPTZ natively. SQLite drops tzinfo, so values
    are normalized to UTC on the way in and re-tagged on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


JSONType = JSON().with_variant(JSONB(), "postgresql")
Money = Numeric(12, 2, asdecimal=False)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Enums
# =============================================================================


class AccountType(str, PyEnum):
    """End-user account kinds. Professionals may display a shop name."""

    personal = "personal"
    professional = "professional"


class StaffRole(str, PyEnum):
    """Back-office roles. Capabilities per role live in kivendi.auth.capabilities."""

    admin = "admin"
    moderator = "moderator"


class MessageType(str, PyEnum):
    """Chat message kinds."""

    text = "text"
    image = "image"
    offer = "offer"


class ReportStatus(str, PyEnum):
    """Moderation queue states for user reports."""

    pending = "pending"
    resolved = "resolved"
    dismissed = "dismissed"


class PaymentStatus(str, PyEnum):
    """AdBoost payment states.

    States:
        pending: Purchase recorded, gateway confirmation outstanding
        completed: Gateway confirmed the payment
        failed: Gateway reported failure (boost inactive)
        refunded: Gateway refunded the payment (boost inactive)
        admin_granted: Granted by staff without payment
    """

    pending = "pending"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"
    admin_granted = "admin_granted"


class DeviceType(str, PyEnum):
    """Push-capable client platforms."""

    android = "android"
    ios = "ios"
    web = "web"


def _values(enum_cls: type[PyEnum]) -> str:
    return ", ".join(f"'{member.value}'" for member in enum_cls)


# =============================================================================
# Users & Staff
# =============================================================================


class User(Base):
    """Marketplace end-user.

    Accounts are created by the auth collaborator; this service only reads
    display attributes and the is_verified / is_blocked gates.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(Text, nullable=False)
    last_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    phone: Mapped[str | None] = mapped_column(Text, nullable=True)
    account_type: Mapped[str] = mapped_column(
        Text, nullable=False, default=AccountType.personal.value
    )
    shop_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            f"account_type IN ({_values(AccountType)})",
            name="ck_users_account_type",
        ),
    )


class Admin(Base):
    """Back-office staff account (admin or moderator)."""

    __tablename__ = "admins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False, default=StaffRole.moderator.value)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(f"role IN ({_values(StaffRole)})", name="ck_admins_role"),
    )


# =============================================================================
# Catalog: Categories & Ads
# =============================================================================


class Category(Base):
    """Top-level category."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)


class SubCategory(Base):
    """Second-level category. Deletion is refused while ads reference it."""

    __tablename__ = "sub_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("category_id", "name", name="uq_sub_categories_category_name"),
    )


class Ad(Base):
    """Classified ad.

    Moderation flags (is_validated, is_rejected, is_deactivated) are
    mutually exclusive. is_boosted mirrors the existence of an active,
    unexpired AdBoost row and is maintained by the boost service and the
    expiration job.
    """

    __tablename__ = "ads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    sub_category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sub_categories.id", ondelete="RESTRICT"), nullable=False
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price: Mapped[float] = mapped_column(Money, nullable=False)
    images: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    form_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    city: Mapped[str] = mapped_column(Text, nullable=False, default="")
    phone: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone_visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_validated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_rejected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_deactivated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_boosted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_sold: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_ads_price_non_negative"),
        CheckConstraint(
            "(CASE WHEN is_validated THEN 1 ELSE 0 END)"
            " + (CASE WHEN is_rejected THEN 1 ELSE 0 END)"
            " + (CASE WHEN is_deactivated THEN 1 ELSE 0 END) <= 1",
            name="ck_ads_moderation_exclusive",
        ),
        Index("ix_ads_user_id", "user_id"),
        Index("ix_ads_is_boosted", "is_boosted"),
    )

    @property
    def first_image(self) -> str | None:
        return self.images[0] if self.images else None


# =============================================================================
# Chat: Conversations, Messages, Blocks, Reports
# =============================================================================


class Conversation(Base):
    """Chat thread between an ad owner (seller) and one other user (buyer).

    At most one conversation exists per (ad, unordered participant pair).
    The seller is the ad owner at creation time and is never rebalanced.
    """

    __tablename__ = "conversations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ad_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ads.id", ondelete="CASCADE"), nullable=False
    )
    seller_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    buyer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("seller_id <> buyer_id", name="ck_conversations_distinct_participants"),
        UniqueConstraint("ad_id", "seller_id", "buyer_id", name="uq_conversations_ad_pair"),
        Index("ix_conversations_seller_id", "seller_id"),
        Index("ix_conversations_buyer_id", "buyer_id"),
    )

    def is_participant(self, user_id: int) -> bool:
        return user_id in (self.seller_id, self.buyer_id)

    def other_participant(self, user_id: int) -> int:
        return self.buyer_id if user_id == self.seller_id else self.seller_id


class Message(Base):
    """Chat message. Ordered within a conversation by (created_at, id)."""

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(Text, nullable=False, default=MessageType.text.value)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)
    offer_amount: Mapped[float | None] = mapped_column(Money, nullable=True)
    image_urls: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(f"type IN ({_values(MessageType)})", name="ck_messages_type"),
        CheckConstraint(
            "offer_amount IS NULL OR offer_amount >= 0",
            name="ck_messages_offer_amount_non_negative",
        ),
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
    )


class UserBlock(Base):
    """Directed block row. A pair is blocked if either direction exists."""

    __tablename__ = "user_blocks"

    blocker_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    blocked_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        PrimaryKeyConstraint("blocker_id", "blocked_id", name="pk_user_blocks"),
        CheckConstraint("blocker_id <> blocked_id", name="ck_user_blocks_not_self"),
        Index("ix_user_blocks_blocked_id", "blocked_id"),
    )


class Report(Base):
    """User report filed from a conversation, reviewed by staff."""

    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reporter_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    reported_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    conversation_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("conversations.id", ondelete="SET NULL"), nullable=True
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=ReportStatus.pending.value)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(f"status IN ({_values(ReportStatus)})", name="ck_reports_status"),
        CheckConstraint("reporter_id <> reported_id", name="ck_reports_not_self"),
    )


# =============================================================================
# Boosts & Payments
# =============================================================================


class BoostOffer(Base):
    """Purchasable boost package. Soft-disabled via is_active=false."""

    __tablename__ = "boost_offers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[float] = mapped_column(Money, nullable=False)
    position_priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    features: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    color: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("duration_days > 0", name="ck_boost_offers_duration_positive"),
        CheckConstraint("price >= 0", name="ck_boost_offers_price_non_negative"),
    )


class AdBoost(Base):
    """One boost window for an ad.

    At most one row per ad may be active and unexpired at any instant. The
    boost service enforces this under a row lock on the ad.
    """

    __tablename__ = "ad_boosts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ad_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ads.id", ondelete="CASCADE"), nullable=False
    )
    boost_offer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("boost_offers.id", ondelete="RESTRICT"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    start_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    payment_status: Mapped[str] = mapped_column(
        Text, nullable=False, default=PaymentStatus.pending.value
    )
    payment_method: Mapped[str] = mapped_column(Text, nullable=False)
    transaction_id: Mapped[str | None] = mapped_column(Text, nullable=True, unique=True)
    amount_paid: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            f"payment_status IN ({_values(PaymentStatus)})",
            name="ck_ad_boosts_payment_status",
        ),
        CheckConstraint("end_date > start_date", name="ck_ad_boosts_window"),
        CheckConstraint("amount_paid >= 0", name="ck_ad_boosts_amount_non_negative"),
        Index("ix_ad_boosts_ad_active", "ad_id", "is_active", "end_date"),
        Index("ix_ad_boosts_user_id", "user_id"),
    )


class PaymentRecord(Base):
    """Audit row for a gateway transaction. transaction_id is consumed once."""

    __tablename__ = "payment_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    boost_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ad_boosts.id", ondelete="SET NULL"), nullable=True
    )
    ad_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ads.id", ondelete="SET NULL"), nullable=True
    )
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    status: Mapped[str | None] = mapped_column(Text, nullable=True)
    state: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_response: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )


# =============================================================================
# Notifications & Push
# =============================================================================


class DeviceToken(Base):
    """Push token. Globally unique; re-registration reassigns the owner."""

    __tablename__ = "device_tokens"

    token: Mapped[str] = mapped_column(Text, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    device_type: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(f"device_type IN ({_values(DeviceType)})", name="ck_device_tokens_type"),
        Index("ix_device_tokens_user_id", "user_id"),
    )


class NotificationPreference(Base):
    """Per-user notification switches. A missing row means all enabled.

    Only push_notifications gates delivery; the per-type columns are
    stored for clients and future use.
    """

    __tablename__ = "notification_preferences"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    push_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    message_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    ad_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    favorite_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )


class Notification(Base):
    """In-app notification."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (Index("ix_notifications_user_created", "user_id", "created_at"),)
