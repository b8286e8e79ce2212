"""
Emetteur de notifications.

Pur effet de bord : insère une ligne `notifications` adressée au client ou
au compte retailer du tenant. La livraison (push/WebSocket) lit cette table
et n'est pas gérée ici.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from backend.app.core.clock import utcnow
from backend.app.core.exceptions import NotFoundError
from backend.app.db.models.core_types import EventType, Role, enum_value
from backend.app.db.models.models_v1 import Notification, Order, User

logger = logging.getLogger(__name__)

Template = Callable[[Order, dict[str, Any]], tuple[str, str]]


def _store(order: Order) -> str:
    return order.store_name or "The pharmacy"


CUSTOMER_TEMPLATES: dict[str, Template] = {
    EventType.accepted.value: lambda o, d: (
        "Order Confirmed",
        f"{_store(o)} confirmed your order. Ready in {d.get('estimated_minutes')} mins.",
    ),
    EventType.rejected.value: lambda o, d: (
        "Order Rejected",
        f"{_store(o)} couldn't fulfill your order. Reason: {d.get('reason')}",
    ),
    EventType.ready.value: lambda o, d: (
        "Order Ready for Pickup",
        f"Your order is ready at {_store(o)}!",
    ),
    EventType.completed.value: lambda o, d: (
        "Order Completed",
        f"Thank you for your order! ₹{o.total} paid via {d.get('payment_method')}.",
    ),
    EventType.expired.value: lambda o, d: (
        "Order Expired",
        f"Your order at {_store(o)} expired. Please place a new order.",
    ),
}

PHARMACY_TEMPLATES: dict[str, Template] = {
    EventType.placed.value: lambda o, d: (
        "New Order Received",
        f"Order #{o.id} from {o.customer_name or 'Customer'} - ₹{o.total}",
    ),
    EventType.cancelled.value: lambda o, d: (
        "Order Cancelled",
        f"Customer cancelled order #{o.id}",
    ),
}


def _insert(
    db: Session,
    *,
    tenant_id: str,
    user_id: int,
    order: Order,
    event_type: str,
    title: str,
    message: str,
    now: datetime,
) -> Notification:
    notif = Notification(
        tenant_id=tenant_id,
        user_id=user_id,
        type=event_type,
        title=title,
        message=message,
        order_id=order.id,
        read=False,
        created_at=now,
    )
    db.add(notif)
    db.flush()
    return notif


def notify_customer(
    db: Session,
    order: Order,
    event_type: str,
    data: dict[str, Any] | None = None,
    *,
    now: datetime | None = None,
) -> Notification | None:
    """Pas de template ou pas de client : rien n'est émis (pas une erreur)."""
    template = CUSTOMER_TEMPLATES.get(enum_value(event_type))
    if template is None or order.customer_id is None:
        return None

    title, message = template(order, data or {})
    notif = _insert(
        db,
        tenant_id=order.customer_tenant_id or "default",
        user_id=order.customer_id,
        order=order,
        event_type=enum_value(event_type),
        title=title,
        message=message,
        now=now or utcnow(),
    )
    logger.info("[OMS] Notification sent to customer: %s (order %s)", enum_value(event_type), order.id)
    return notif


def notify_pharmacy(
    db: Session,
    order: Order,
    event_type: str,
    data: dict[str, Any] | None = None,
    *,
    now: datetime | None = None,
) -> Notification | None:
    template = PHARMACY_TEMPLATES.get(enum_value(event_type))
    if template is None:
        return None

    owner = db.execute(
        select(User)
        .where(User.tenant_id == order.tenant_id)
        .where(User.role == Role.retailer)
        .where(User.active.is_(True))
        .order_by(User.id.asc())
        .limit(1)
    ).scalar_one_or_none()
    if owner is None:
        logger.warning("[OMS] No retailer user for tenant %s, %s not notified", order.tenant_id, enum_value(event_type))
        return None

    title, message = template(order, data or {})
    notif = _insert(
        db,
        tenant_id=order.tenant_id,
        user_id=owner.id,
        order=order,
        event_type=enum_value(event_type),
        title=title,
        message=message,
        now=now or utcnow(),
    )
    logger.info("[OMS] Notification sent to pharmacy: %s (order %s)", enum_value(event_type), order.id)
    return notif


def list_notifications(db: Session, *, user_id: int, tenant_id: str, limit: int = 50) -> list[Notification]:
    return list(
        db.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .where(Notification.tenant_id == tenant_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )


def mark_notification_read(db: Session, *, notification_id: int, user_id: int) -> None:
    result = db.execute(
        update(Notification)
        .where(Notification.id == notification_id)
        .where(Notification.user_id == user_id)
        .values(read=True)
    )
    if result.rowcount != 1:
        db.rollback()
        raise NotFoundError("Notification not found", notification_id=notification_id)
    db.commit()
