from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.app.api.deps import Actor, get_actor, get_db
from backend.app.schemas.notification import NotificationRead
from backend.services.notifications import list_notifications, mark_notification_read

router = APIRouter(prefix="/notifications")


@router.get("", response_model=list[NotificationRead])
def get_notifications(
    limit: int = Query(default=50, ge=1, le=200),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return list_notifications(db, user_id=actor.user_id, tenant_id=actor.tenant_id, limit=limit)


@router.post("/{notification_id}/read", status_code=204)
def read_notification(notification_id: int, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    mark_notification_read(db, notification_id=notification_id, user_id=actor.user_id)
