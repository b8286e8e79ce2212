from datetime import datetime

from pydantic import BaseModel, ConfigDict


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: str
    user_id: int
    type: str
    title: str
    message: str
    order_id: int | None
    read: bool
    created_at: datetime
