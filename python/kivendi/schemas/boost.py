"""Boost offer, ad boost and payment webhook Pydantic schemas."""

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# =============================================================================
# Offers
# =============================================================================


class BoostOfferOut(BaseModel):
    id: int
    name: str
    description: str
    duration_days: int
    price: float
    position_priority: int
    features: list[str] = Field(default_factory=list)
    color: str | None = None
    is_active: bool
    display_order: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BoostOfferCreateRequest(BaseModel):
    name: str
    description: str = ""
    duration_days: int
    price: float
    position_priority: int = 0
    features: list[str] = Field(default_factory=list)
    color: str | None = None
    is_active: bool = True
    display_order: int = 0


class BoostOfferUpdateRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    name: str | None = None
    description: str | None = None
    duration_days: int | None = None
    price: float | None = None
    position_priority: int | None = None
    features: list[str] | None = None
    color: str | None = None
    is_active: bool | None = None
    display_order: int | None = None


class BoostOfferStatsOut(BaseModel):
    offer_id: int
    total_purchases: int
    active_boosts: int
    completed_boosts: int
    total_revenue: float


# =============================================================================
# Purchases & grants
# =============================================================================


class BoostPurchaseRequest(BaseModel):
    boost_offer_id: int
    transaction_id: str = Field(min_length=1, max_length=255)


class BoostGrantRequest(BaseModel):
    ad_id: int
    boost_offer_id: int
    reason: str | None = None


class BoostActivatedOut(BaseModel):
    """Returned by purchase (201) and admin grant."""

    message: str
    boost_id: int
    ad_id: int
    start_date: datetime
    end_date: datetime


# =============================================================================
# Listings
# =============================================================================


class BoostStatusOut(BaseModel):
    """Derived from the newest active, unexpired boost of an ad."""

    ad_id: int
    is_boosted: bool
    end_date: datetime | None = None
    offer_name: str | None = None
    offer_color: str | None = None
    priority: int | None = None


class BoostHistoryItemOut(BaseModel):
    id: int
    ad_id: int
    ad_title: str
    ad_image_url: str | None = None
    boost_offer_id: int
    offer_name: str
    duration_days: int
    color: str | None = None
    start_date: datetime
    end_date: datetime
    is_active: bool
    payment_status: str
    payment_method: str
    transaction_id: str | None = None
    amount_paid: float
    created_at: datetime


class BoostedAdOut(BaseModel):
    id: int
    user_id: int
    title: str
    price: float
    city: str
    image_url: str | None = None
    created_at: datetime
    boost_id: int
    boost_end_date: datetime
    offer_name: str
    offer_color: str | None = None
    priority: int


class BoostedAdsPagination(BaseModel):
    current_page: int
    total_pages: int
    total_ads: int
    limit: int


class BoostedAdsPageOut(BaseModel):
    ads: list[BoostedAdOut]
    pagination: BoostedAdsPagination


class ActiveBoostOut(BaseModel):
    """Admin view of an active boost."""

    id: int
    ad_id: int
    ad_title: str
    user_id: int
    user_name: str
    boost_offer_id: int
    offer_name: str
    start_date: datetime
    end_date: datetime
    payment_status: str
    payment_method: str
    transaction_id: str | None = None
    amount_paid: float


class BoostDeactivatedOut(BaseModel):
    id: int
    ad_id: int
    is_active: bool
    ad_is_boosted: bool


# =============================================================================
# Payment webhook
# =============================================================================


class KkiapayWebhookPayload(BaseModel):
    """Gateway webhook body. Unknown fields are ignored."""

    type: str
    transaction_id: str = Field(
        validation_alias=AliasChoices("transactionId", "transaction_id"), min_length=1
    )
    amount: float = 0.0
    status: str | None = None
    state: str | None = None
    reason: str | None = None

    model_config = ConfigDict(extra="ignore")


class WebhookAckOut(BaseModel):
    status: str = "received"
