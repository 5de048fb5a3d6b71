"""Ad moderation and staff Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class RejectAdRequest(BaseModel):
    reason: str | None = None


class AdModerationOut(BaseModel):
    """Moderation flags after an admin action. At most one is true."""

    ad_id: int
    is_validated: bool
    is_rejected: bool
    is_deactivated: bool

    model_config = ConfigDict(from_attributes=True)


class AdDeletedOut(BaseModel):
    ad_id: int
    deleted: bool = True


class StaffOut(BaseModel):
    id: int
    email: str
    name: str
    role: str
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
