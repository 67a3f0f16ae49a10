from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel

NotificationKind = Literal["info", "alert", "success"]


class Notification(BaseModel):
    id: str
    customer_id: Optional[str] = None  # None addresses the admin inbox
    title: str
    message: str
    kind: NotificationKind = "info"
    created_at: datetime
    read: bool = False


class NotificationListResponse(BaseModel):
    total: int
    items: List[Notification]
