"""Pydantic schemas for request/response models.

All schemas are re-exported here for convenient imports.
"""

from kivendi.schemas.boost import (
    ActiveBoostOut,
    BoostActivatedOut,
    BoostDeactivatedOut,
    BoostedAdOut,
    BoostedAdsPageOut,
    BoostGrantRequest,
    BoostHistoryItemOut,
    BoostOfferCreateRequest,
    BoostOfferOut,
    BoostOfferStatsOut,
    BoostOfferUpdateRequest,
    BoostPurchaseRequest,
    BoostStatusOut,
    KkiapayWebhookPayload,
    WebhookAckOut,
)
from kivendi.schemas.conversation import (
    BlockActionOut,
    BlockedUserOut,
    BlockStatusOut,
    ChatFrameIn,
    ChatImagesOut,
    ConversationSummaryOut,
    MarkReadOut,
    MessageOut,
    OpenConversationOut,
    ReportCreatedOut,
    ReportCreateRequest,
    ReportOut,
    ReportUpdateRequest,
    UnreadCountOut,
)
from kivendi.schemas.moderation import AdDeletedOut, AdModerationOut, RejectAdRequest, StaffOut
from kivendi.schemas.notification import (
    DeviceTokenDeleteRequest,
    DeviceTokenOut,
    DeviceTokenRegisterRequest,
    NotificationOut,
    NotificationPageOut,
    NotificationPreferencesOut,
    NotificationPreferencesUpdate,
)

__all__ = [
    # Boosts
    "ActiveBoostOut",
    "BoostActivatedOut",
    "BoostDeactivatedOut",
    "BoostedAdOut",
    "BoostedAdsPageOut",
    "BoostGrantRequest",
    "BoostHistoryItemOut",
    "BoostOfferCreateRequest",
    "BoostOfferOut",
    "BoostOfferStatsOut",
    "BoostOfferUpdateRequest",
    "BoostPurchaseRequest",
    "BoostStatusOut",
    "KkiapayWebhookPayload",
    "WebhookAckOut",
    # Conversations
    "BlockActionOut",
    "BlockedUserOut",
    "BlockStatusOut",
    "ChatFrameIn",
    "ChatImagesOut",
    "ConversationSummaryOut",
    "MarkReadOut",
    "MessageOut",
    "OpenConversationOut",
    "ReportCreatedOut",
    "ReportCreateRequest",
    "ReportOut",
    "ReportUpdateRequest",
    "UnreadCountOut",
    # Moderation
    "AdDeletedOut",
    "AdModerationOut",
    "RejectAdRequest",
    "StaffOut",
    # Notifications
    "DeviceTokenDeleteRequest",
    "DeviceTokenOut",
    "DeviceTokenRegisterRequest",
    "NotificationOut",
    "NotificationPageOut",
    "NotificationPreferencesOut",
    "NotificationPreferencesUpdate",
]
