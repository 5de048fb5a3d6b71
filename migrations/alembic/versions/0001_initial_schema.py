"""Initial schema - users, staff, catalog, chat, boosts, payments, notifications

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Creates every table the marketplace backend reads or writes. Enumerated
columns are text guarded by CHECK constraints mirroring kivendi.db.models.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        server_default=None if nullable else sa.text("now()"),
        nullable=nullable,
    )


def _money(name: str, nullable: bool = False, default: str | None = None) -> sa.Column:
    return sa.Column(name, sa.Numeric(12, 2), server_default=default, nullable=nullable)


def upgrade() -> None:
    # ==========================================================================
    # users / admins
    # ==========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), server_default="", nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("account_type", sa.Text(), server_default="personal", nullable=False),
        sa.Column("shop_name", sa.Text(), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("is_verified", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_blocked", sa.Boolean(), server_default="false", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "account_type IN ('personal', 'professional')", name="ck_users_account_type"
        ),
    )

    op.create_table(
        "admins",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), server_default="moderator", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_admins_email"),
        sa.CheckConstraint("role IN ('admin', 'moderator')", name="ck_admins_role"),
    )

    # ==========================================================================
    # catalog
    # ==========================================================================
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_categories_name"),
    )

    op.create_table(
        "sub_categories",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("category_id", "name", name="uq_sub_categories_category_name"),
    )

    op.create_table(
        "ads",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("sub_category_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        _money("price"),
        sa.Column("images", postgresql.JSONB(), server_default="[]", nullable=False),
        sa.Column("form_data", postgresql.JSONB(), nullable=True),
        sa.Column("city", sa.Text(), server_default="", nullable=False),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("phone_visible", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("is_validated", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_rejected", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_deactivated", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_boosted", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_sold", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("views", sa.Integer(), server_default="0", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sub_category_id"], ["sub_categories.id"], ondelete="RESTRICT"),
        sa.CheckConstraint("price >= 0", name="ck_ads_price_non_negative"),
        # At most one moderation flag may be set
        sa.CheckConstraint(
            "(CASE WHEN is_validated THEN 1 ELSE 0 END)"
            " + (CASE WHEN is_rejected THEN 1 ELSE 0 END)"
            " + (CASE WHEN is_deactivated THEN 1 ELSE 0 END) <= 1",
            name="ck_ads_moderation_exclusive",
        ),
    )
    op.create_index("ix_ads_user_id", "ads", ["user_id"])
    op.create_index("ix_ads_is_boosted", "ads", ["is_boosted"])

    # ==========================================================================
    # chat
    # ==========================================================================
    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("ad_id", sa.Integer(), nullable=False),
        sa.Column("seller_id", sa.Integer(), nullable=False),
        sa.Column("buyer_id", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["ad_id"], ["ads.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["seller_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["buyer_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint("seller_id <> buyer_id", name="ck_conversations_distinct_participants"),
        sa.UniqueConstraint("ad_id", "seller_id", "buyer_id", name="uq_conversations_ad_pair"),
    )
    op.create_index("ix_conversations_seller_id", "conversations", ["seller_id"])
    op.create_index("ix_conversations_buyer_id", "conversations", ["buyer_id"])
    # One conversation per (ad, unordered pair), whichever side is the seller
    op.create_index(
        "uix_conversations_ad_unordered_pair",
        "conversations",
        [
            "ad_id",
            sa.text("LEAST(seller_id, buyer_id)"),
            sa.text("GREATEST(seller_id, buyer_id)"),
        ],
        unique=True,
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("conversation_id", sa.Integer(), nullable=False),
        sa.Column("sender_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.Text(), server_default="text", nullable=False),
        sa.Column("text", sa.Text(), nullable=True),
        _money("offer_amount", nullable=True),
        sa.Column("image_urls", postgresql.JSONB(), server_default="[]", nullable=False),
        sa.Column("is_read", sa.Boolean(), server_default="false", nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint("type IN ('text', 'image', 'offer')", name="ck_messages_type"),
        sa.CheckConstraint(
            "offer_amount IS NULL OR offer_amount >= 0",
            name="ck_messages_offer_amount_non_negative",
        ),
    )
    op.create_index(
        "ix_messages_conversation_created", "messages", ["conversation_id", "created_at"]
    )
    # Unread counts scan only unread rows
    op.create_index(
        "ix_messages_unread",
        "messages",
        ["conversation_id", "sender_id"],
        postgresql_where=sa.text("is_read = false"),
    )

    op.create_table(
        "user_blocks",
        sa.Column("blocker_id", sa.Integer(), nullable=False),
        sa.Column("blocked_id", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("blocker_id", "blocked_id", name="pk_user_blocks"),
        sa.ForeignKeyConstraint(["blocker_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["blocked_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint("blocker_id <> blocked_id", name="ck_user_blocks_not_self"),
    )
    op.create_index("ix_user_blocks_blocked_id", "user_blocks", ["blocked_id"])

    op.create_table(
        "reports",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("reporter_id", sa.Integer(), nullable=False),
        sa.Column("reported_id", sa.Integer(), nullable=False),
        sa.Column("conversation_id", sa.Integer(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["reporter_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reported_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversations.id"], ondelete="SET NULL"),
        sa.CheckConstraint(
            "status IN ('pending', 'resolved', 'dismissed')", name="ck_reports_status"
        ),
        sa.CheckConstraint("reporter_id <> reported_id", name="ck_reports_not_self"),
    )

    # ==========================================================================
    # boosts & payments
    # ==========================================================================
    op.create_table(
        "boost_offers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False),
        _money("price"),
        sa.Column("position_priority", sa.Integer(), server_default="0", nullable=False),
        sa.Column("features", postgresql.JSONB(), server_default="[]", nullable=False),
        sa.Column("color", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("display_order", sa.Integer(), server_default="0", nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_boost_offers_name"),
        sa.CheckConstraint("duration_days > 0", name="ck_boost_offers_duration_positive"),
        sa.CheckConstraint("price >= 0", name="ck_boost_offers_price_non_negative"),
    )

    op.create_table(
        "ad_boosts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("ad_id", sa.Integer(), nullable=False),
        sa.Column("boost_offer_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        _timestamp("start_date"),
        _timestamp("end_date"),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("payment_status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("payment_method", sa.Text(), nullable=False),
        sa.Column("transaction_id", sa.Text(), nullable=True),
        _money("amount_paid", default="0"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["ad_id"], ["ads.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["boost_offer_id"], ["boost_offers.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("transaction_id", name="uq_ad_boosts_transaction_id"),
        sa.CheckConstraint(
            "payment_status IN ('pending', 'completed', 'failed', 'refunded', 'admin_granted')",
            name="ck_ad_boosts_payment_status",
        ),
        sa.CheckConstraint("end_date > start_date", name="ck_ad_boosts_window"),
        sa.CheckConstraint("amount_paid >= 0", name="ck_ad_boosts_amount_non_negative"),
    )
    op.create_index("ix_ad_boosts_ad_active", "ad_boosts", ["ad_id", "is_active", "end_date"])
    op.create_index("ix_ad_boosts_user_id", "ad_boosts", ["user_id"])
    # Expiry sweeps and active lookups only touch active rows
    op.create_index(
        "ix_ad_boosts_active_end_date",
        "ad_boosts",
        ["end_date"],
        postgresql_where=sa.text("is_active = true"),
    )

    op.create_table(
        "payment_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("transaction_id", sa.Text(), nullable=False),
        sa.Column("boost_id", sa.Integer(), nullable=True),
        sa.Column("ad_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        _money("amount", default="0"),
        sa.Column("status", sa.Text(), nullable=True),
        sa.Column("state", sa.Text(), nullable=True),
        sa.Column("raw_response", postgresql.JSONB(), nullable=True),
        _timestamp("verified_at", nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["boost_id"], ["ad_boosts.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["ad_id"], ["ads.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("transaction_id", name="uq_payment_records_transaction_id"),
    )

    # ==========================================================================
    # notifications & push
    # ==========================================================================
    op.create_table(
        "device_tokens",
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("device_type", sa.Text(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("token"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "device_type IN ('android', 'ios', 'web')", name="ck_device_tokens_type"
        ),
    )
    op.create_index("ix_device_tokens_user_id", "device_tokens", ["user_id"])

    op.create_table(
        "notification_preferences",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("notifications_enabled", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("email_notifications", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("push_notifications", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("message_notifications", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("ad_notifications", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("favorite_notifications", sa.Boolean(), server_default="true", nullable=False),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("user_id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", postgresql.JSONB(), nullable=True),
        sa.Column("is_read", sa.Boolean(), server_default="false", nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("notification_preferences")
    op.drop_table("device_tokens")
    op.drop_table("payment_records")
    op.drop_table("ad_boosts")
    op.drop_table("boost_offers")
    op.drop_table("reports")
    op.drop_table("user_blocks")
    op.drop_table("messages")
    op.drop_table("conversations")
    op.drop_table("ads")
    op.drop_table("sub_categories")
    op.drop_table("categories")
    op.drop_table("admins")
    op.drop_table("users")
