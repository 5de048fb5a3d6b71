"""Conversation, message, block and report Pydantic schemas.

Messages are ordered by (created_at, id) within a conversation. A message
frame sent over the conversation socket is exactly MessageOut serialized
with mode="json".
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# Valid message types - must match DB constraint
MessageTypeLiteral = Literal["text", "image", "offer"]


# =============================================================================
# Response Schemas
# =============================================================================


class OpenConversationOut(BaseModel):
    """Result of opening a conversation on an ad."""

    conversation_id: int
    created: bool


class MessageOut(BaseModel):
    """A persisted chat message."""

    id: int
    conversation_id: int
    sender_id: int
    type: str  # "text" | "image" | "offer"
    text: str | None = None
    offer_amount: float | None = None
    image_urls: list[str] = Field(default_factory=list)
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationSummaryOut(BaseModel):
    """One row of the viewer's conversation list.

    last_message_text is a preview: the text itself, "Image partagée" for
    images, or "Offre: <amount> FCFA" for offers.
    """

    conversation_id: int
    ad_id: int
    ad_title: str
    ad_image_url: str | None = None
    other_user_id: int
    other_user_name: str
    other_user_avatar_url: str | None = None
    last_message_text: str | None = None
    last_message_type: str | None = None
    last_message_offer_amount: float | None = None
    last_message_timestamp: datetime | None = None
    unread_messages_count: int = 0
    created_at: datetime


class UnreadCountOut(BaseModel):
    unread_count: int


class MarkReadOut(BaseModel):
    conversation_id: int
    marked: int


class ChatImagesOut(BaseModel):
    """Images uploaded ahead of an image frame."""

    image_urls: list[str]


# =============================================================================
# Blocks
# =============================================================================


class BlockStatusOut(BaseModel):
    conversation_id: int
    is_blocked: bool
    blocked_by_me: bool


class BlockActionOut(BaseModel):
    status: str  # "blocked" | "already_blocked" | "unblocked"
    blocked_user_id: int


class BlockedUserOut(BaseModel):
    id: int
    name: str
    avatar_url: str | None = None
    blocked_at: datetime


# =============================================================================
# Reports
# =============================================================================


class ReportCreateRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=2000)


class ReportCreatedOut(BaseModel):
    id: int
    reported_id: int
    conversation_id: int
    status: str


class ReportOut(BaseModel):
    """Report joined with reporter and reported user display info."""

    id: int
    reporter_id: int
    reporter_email: str
    reporter_name: str
    reported_id: int
    reported_email: str
    reported_name: str
    conversation_id: int | None = None
    reason: str
    status: str
    admin_notes: str | None = None
    created_at: datetime
    updated_at: datetime


class ReportUpdateRequest(BaseModel):
    """Partial update. An empty admin_notes string clears the notes."""

    status: str | None = None
    admin_notes: str | None = None


# =============================================================================
# WebSocket frames
# =============================================================================


class ChatFrameIn(BaseModel):
    """Inbound frame on a conversation socket.

    Images are either base64 payloads (`images`) or URLs previously returned
    by POST /conversations/{id}/images (`image_urls`).
    """

    type: str
    text: str | None = None
    offer_amount: float | None = None
    images: list[str] = Field(default_factory=list)
    image_urls: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")
