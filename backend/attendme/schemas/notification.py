from datetime import datetime

from pydantic import BaseModel

from attendme.models.notification import NotificationPriority, NotificationType


class NotificationOut(BaseModel):
    id: str
    user_id: str
    notification_type: NotificationType
    priority: NotificationPriority
    title: str
    body: str
    data: dict
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
