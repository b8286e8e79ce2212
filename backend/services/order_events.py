"""
Journal d'événements commande (append-only).

Une ligne par transition ; jamais relu par la machine à états.
Chaque insertion est aussi émise sur le logger "audit" (JSON).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.core.clock import utcnow
from backend.app.core.logging_config import AUDIT_LOGGER_NAME
from backend.app.db.models.core_types import enum_value
from backend.app.db.models.models_v1 import OrderEvent

audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)


def record_event(
    db: Session,
    *,
    order_id: int,
    event_type: str,
    actor_id: int | None,
    actor_role: str | None,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> OrderEvent:
    now = now or utcnow()
    event = OrderEvent(
        order_id=order_id,
        event_type=enum_value(event_type),
        actor_id=actor_id,
        actor_role=actor_role,
        meta=metadata or {},
        created_at=now,
    )
    db.add(event)
    db.flush()

    audit_logger.info(
        json.dumps(
            {
                "timestamp": now.isoformat(),
                "event_type": f"order.{event.event_type}",
                "order_id": order_id,
                "actor_id": actor_id,
                "actor_role": actor_role,
            }
        )
    )
    return event


def list_events(db: Session, order_id: int) -> list[OrderEvent]:
    return list(
        db.execute(
            select(OrderEvent)
            .where(OrderEvent.order_id == order_id)
            .order_by(OrderEvent.created_at.asc(), OrderEvent.id.asc())
        )
        .scalars()
        .all()
    )
