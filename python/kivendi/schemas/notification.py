"""Notification, preference and device token Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class NotificationOut(BaseModel):
    id: int
    user_id: int
    type: str
    title: str
    message: str
    data: dict[str, Any] | None = None
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationPagination(BaseModel):
    current_page: int
    total_pages: int
    total: int
    limit: int


class NotificationPageOut(BaseModel):
    notifications: list[NotificationOut]
    pagination: NotificationPagination


class NotificationPreferencesOut(BaseModel):
    """Per-user switches. Only push_notifications gates delivery."""

    notifications_enabled: bool = True
    email_notifications: bool = True
    push_notifications: bool = True
    message_notifications: bool = True
    ad_notifications: bool = True
    favorite_notifications: bool = True

    model_config = ConfigDict(from_attributes=True)


class NotificationPreferencesUpdate(BaseModel):
    notifications_enabled: bool
    email_notifications: bool
    push_notifications: bool
    message_notifications: bool
    ad_notifications: bool
    favorite_notifications: bool


class DeviceTokenRegisterRequest(BaseModel):
    token: str = Field(min_length=1, max_length=4096)
    device_type: str


class DeviceTokenDeleteRequest(BaseModel):
    token: str = Field(min_length=1, max_length=4096)


class DeviceTokenOut(BaseModel):
    token: str
    user_id: int
    device_type: str

    model_config = ConfigDict(from_attributes=True)
