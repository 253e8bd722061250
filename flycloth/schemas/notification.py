from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from flycloth.models.notification import NotificationTypeEnum


class Notification(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[int] = None
    type: NotificationTypeEnum
    title: str
    message: str
    link: Optional[str] = None
    metadata: dict = Field(default_factory=dict, validation_alias="extra_data")
    is_read: bool
    created_at: datetime


class UnreadCount(BaseModel):
    count: int


class MarkReadResult(BaseModel):
    success: bool
    updated: int = 0
