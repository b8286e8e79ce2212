"""
Machine à états des commandes (coeur OMS).

    pending -> confirmed -> preparing -> ready -> completed
    pending|confirmed -> rejected
    pending -> cancelled
    pending -> expired

Chaque transition :
- garde sur le statut courant, puis UPDATE conditionnel (compare-and-swap
  sur orders.status) : deux accept concurrents -> un seul gagnant
- effets (ledger, événement, notification) dans la même transaction
- commit si tout passe, rollback sinon : jamais d'effet partiel
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Iterator, Mapping

import pydantic
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.clock import as_utc, utcnow
from backend.app.core.config import settings
from backend.app.core.exceptions import (
    ExpiredOrder,
    InvalidStateTransition,
    NotFoundError,
    OMSError,
    PersistenceError,
    UnauthorizedActor,
    ValidationError,
)
from backend.app.db.models.core_types import (
    ActorRole,
    EventType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from backend.app.db.models.models_v1 import Order, OrderLine, Product
from backend.app.schemas.order import OrderCreate
from backend.services import inventory
from backend.services.notifications import notify_customer, notify_pharmacy
from backend.services.order_events import record_event

logger = logging.getLogger(__name__)

EXPIRED_REASON = "Order expired - pharmacy did not respond in time"

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.pending: frozenset(
        {OrderStatus.confirmed, OrderStatus.rejected, OrderStatus.cancelled, OrderStatus.expired}
    ),
    OrderStatus.confirmed: frozenset({OrderStatus.preparing, OrderStatus.rejected}),
    OrderStatus.preparing: frozenset({OrderStatus.ready}),
    OrderStatus.ready: frozenset({OrderStatus.completed}),
}


def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS.get(current, frozenset())


# ---------- Helpers ----------
@contextmanager
def _unit_of_work(db: Session) -> Iterator[None]:
    try:
        yield
        db.commit()
    except OMSError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("[OMS] Store failure")
        raise PersistenceError("Order store failure", cause=type(exc).__name__) from exc
    except Exception:
        db.rollback()
        raise


def _load_order(db: Session, order_id: int, tenant_id: str | None = None) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found", order_id=order_id)
    if tenant_id is not None and order.tenant_id != tenant_id:
        raise UnauthorizedActor("Order belongs to another pharmacy", order_id=order_id)
    return order


def _guard(order: Order, requested: OrderStatus) -> None:
    if not can_transition(order.status, requested):
        raise InvalidStateTransition(order.id, order.status.value, requested.value)


def _deadline_passed(order: Order, now: datetime) -> bool:
    return order.expires_at is not None and as_utc(order.expires_at) < as_utc(now)


def _swap_status(
    db: Session,
    order: Order,
    *,
    expected: OrderStatus,
    new: OrderStatus,
    now: datetime,
    **values: Any,
) -> bool:
    """UPDATE ... WHERE status = :expected. False si un autre a déjà bougé la commande."""
    result = db.execute(
        update(Order)
        .where(Order.id == order.id)
        .where(Order.status == expected)
        .values(status=new, updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    db.refresh(order)
    return True


def _transition(
    db: Session,
    order: Order,
    *,
    expected: OrderStatus,
    new: OrderStatus,
    now: datetime,
    **values: Any,
) -> None:
    if not _swap_status(db, order, expected=expected, new=new, now=now, **values):
        _raise_lost_race(db, order, new)


def _raise_lost_race(db: Session, order: Order, requested: OrderStatus) -> None:
    current = db.execute(select(Order.status).where(Order.id == order.id)).scalar_one()
    raise InvalidStateTransition(order.id, current.value, requested.value)


def _apply_expire(db: Session, order: Order, now: datetime) -> bool:
    if not _swap_status(
        db,
        order,
        expected=OrderStatus.pending,
        new=OrderStatus.expired,
        now=now,
        rejection_reason=EXPIRED_REASON,
    ):
        return False

    record_event(
        db,
        order_id=order.id,
        event_type=EventType.expired,
        actor_id=None,
        actor_role=ActorRole.system.value,
        metadata={"auto_rejected": True},
        now=now,
    )
    notify_customer(db, order, EventType.expired, now=now)
    logger.info("[OMS] Order %s expired", order.id)
    return True


def parse_payment_method(value: str | PaymentMethod | None) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod((value or "").strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise ValidationError(
            f"Valid payment method is required ({allowed})",
            payment_method=value,
        ) from None


# ---------- Placement ----------
def place_order(
    db: Session,
    payload: OrderCreate | Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> Order:
    """
    Crée une commande `pending` (frontière de validation des lignes).

    Aucun mouvement de stock : le stock n'est déduit qu'à l'acceptation.
    """
    now = now or utcnow()
    if not isinstance(payload, OrderCreate):
        try:
            payload = OrderCreate.model_validate(payload)
        except pydantic.ValidationError as exc:
            errors = [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]
            raise ValidationError("Invalid order", errors=errors) from None

    with _unit_of_work(db):
        product_ids = sorted({ln.product_id for ln in payload.lines})
        known = set(
            db.execute(
                select(Product.id)
                .where(Product.tenant_id == payload.tenant_id)
                .where(Product.id.in_(product_ids))
            )
            .scalars()
            .all()
        )
        unknown = [pid for pid in product_ids if pid not in known]
        if unknown:
            raise ValidationError(f"Invalid product_id {unknown[0]}", product_ids=unknown)

        expires_at = payload.expires_at or now + timedelta(minutes=settings.ORDER_TIMEOUT_MINUTES)

        order = Order(
            tenant_id=payload.tenant_id,
            customer_tenant_id=payload.customer_tenant_id,
            customer_id=payload.customer_id,
            customer_name=payload.customer_name,
            customer_phone=payload.customer_phone,
            store_name=payload.store_name,
            store_address=payload.store_address,
            total=payload.total,
            status=OrderStatus.pending,
            payment_status=PaymentStatus.unpaid,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        order.lines = [
            OrderLine(
                position=i,
                product_id=ln.product_id,
                product_name=ln.product_name,
                quantity=ln.quantity,
                unit_price=ln.unit_price,
            )
            for i, ln in enumerate(payload.lines, start=1)
        ]
        db.add(order)
        db.flush()  # get order.id

        record_event(
            db,
            order_id=order.id,
            event_type=EventType.placed,
            actor_id=payload.customer_id,
            actor_role=ActorRole.customer.value,
            metadata={"lines": len(order.lines), "total": str(order.total)},
            now=now,
        )
        notify_pharmacy(db, order, EventType.placed, now=now)

    logger.info("[OMS] Order %s placed for tenant %s", order.id, order.tenant_id)
    return order


# ---------- Transitions ----------
def accept_order(
    db: Session,
    order_id: int,
    *,
    actor_id: int | None,
    estimated_minutes: int | None = None,
    tenant_id: str | None = None,
    now: datetime | None = None,
) -> Order:
    now = now or utcnow()
    minutes = settings.DEFAULT_READY_MINUTES if estimated_minutes is None else estimated_minutes
    if minutes <= 0:
        raise ValidationError("estimated_minutes must be positive", estimated_minutes=minutes)

    expired = False
    with _unit_of_work(db):
        order = _load_order(db, order_id, tenant_id)
        _guard(order, OrderStatus.confirmed)

        if _deadline_passed(order, now):
            # même effet que expire_order, puis erreur pour l'appelant
            if not _apply_expire(db, order, now):
                _raise_lost_race(db, order, OrderStatus.confirmed)
            expired = True
        else:
            _transition(
                db,
                order,
                expected=OrderStatus.pending,
                new=OrderStatus.confirmed,
                now=now,
                estimated_ready_minutes=minutes,
            )
            inventory.deduct_stock(
                db,
                tenant_id=order.tenant_id,
                lines=order.lines,
                order_id=order.id,
                now=now,
            )
            record_event(
                db,
                order_id=order.id,
                event_type=EventType.accepted,
                actor_id=actor_id,
                actor_role=ActorRole.retailer.value,
                metadata={"estimated_minutes": minutes},
                now=now,
            )
            notify_customer(db, order, EventType.accepted, {"estimated_minutes": minutes}, now=now)

    if expired:
        raise ExpiredOrder(order_id)

    logger.info("[OMS] Order %s accepted", order_id)
    return order


def reject_order(
    db: Session,
    order_id: int,
    *,
    actor_id: int | None,
    reason: str | None,
    tenant_id: str | None = None,
    now: datetime | None = None,
) -> Order:
    now = now or utcnow()
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Rejection reason is required")

    with _unit_of_work(db):
        order = _load_order(db, order_id, tenant_id)
        _guard(order, OrderStatus.rejected)
        previous = order.status

        _transition(
            db,
            order,
            expected=previous,
            new=OrderStatus.rejected,
            now=now,
            rejection_reason=reason,
        )
        if previous == OrderStatus.confirmed:
            # stock déjà déduit à l'acceptation
            inventory.restore_stock(
                db,
                tenant_id=order.tenant_id,
                lines=order.lines,
                order_id=order.id,
                now=now,
            )

        record_event(
            db,
            order_id=order.id,
            event_type=EventType.rejected,
            actor_id=actor_id,
            actor_role=ActorRole.retailer.value,
            metadata={"reason": reason, "previous_status": previous.value},
            now=now,
        )
        notify_customer(db, order, EventType.rejected, {"reason": reason}, now=now)

    logger.info("[OMS] Order %s rejected: %s", order_id, reason)
    return order


def _simple_transition(
    db: Session,
    order_id: int,
    *,
    expected: OrderStatus,
    new: OrderStatus,
    event_type: EventType,
    actor_id: int | None,
    tenant_id: str | None,
    now: datetime,
    notify: bool,
) -> Order:
    with _unit_of_work(db):
        order = _load_order(db, order_id, tenant_id)
        _guard(order, new)
        _transition(db, order, expected=expected, new=new, now=now)
        record_event(
            db,
            order_id=order.id,
            event_type=event_type,
            actor_id=actor_id,
            actor_role=ActorRole.retailer.value,
            now=now,
        )
        if notify:
            notify_customer(db, order, event_type, now=now)

    logger.info("[OMS] Order %s %s", order_id, new.value)
    return order


def mark_preparing(
    db: Session,
    order_id: int,
    *,
    actor_id: int | None,
    tenant_id: str | None = None,
    now: datetime | None = None,
) -> Order:
    return _simple_transition(
        db,
        order_id,
        expected=OrderStatus.confirmed,
        new=OrderStatus.preparing,
        event_type=EventType.preparing,
        actor_id=actor_id,
        tenant_id=tenant_id,
        now=now or utcnow(),
        notify=False,
    )


def mark_ready(
    db: Session,
    order_id: int,
    *,
    actor_id: int | None,
    tenant_id: str | None = None,
    now: datetime | None = None,
) -> Order:
    return _simple_transition(
        db,
        order_id,
        expected=OrderStatus.preparing,
        new=OrderStatus.ready,
        event_type=EventType.ready,
        actor_id=actor_id,
        tenant_id=tenant_id,
        now=now or utcnow(),
        notify=True,
    )


def complete_order(
    db: Session,
    order_id: int,
    *,
    actor_id: int | None,
    payment_method: str | PaymentMethod | None,
    tenant_id: str | None = None,
    now: datetime | None = None,
) -> Order:
    """Retrait + paiement en boutique : ready -> completed, payment_status=paid."""
    now = now or utcnow()
    method = parse_payment_method(payment_method)

    with _unit_of_work(db):
        order = _load_order(db, order_id, tenant_id)
        _guard(order, OrderStatus.completed)
        _transition(
            db,
            order,
            expected=OrderStatus.ready,
            new=OrderStatus.completed,
            now=now,
            payment_status=PaymentStatus.paid,
            payment_method=method,
            pickup_time=now,
        )
        record_event(
            db,
            order_id=order.id,
            event_type=EventType.completed,
            actor_id=actor_id,
            actor_role=ActorRole.retailer.value,
            metadata={"payment_method": method.value},
            now=now,
        )
        notify_customer(db, order, EventType.completed, {"payment_method": method.value}, now=now)

    logger.info("[OMS] Order %s completed", order_id)
    return order


def cancel_order(
    db: Session,
    order_id: int,
    *,
    customer_id: int,
    now: datetime | None = None,
) -> Order:
    now = now or utcnow()

    with _unit_of_work(db):
        order = _load_order(db, order_id)
        if order.customer_id is None or order.customer_id != customer_id:
            raise UnauthorizedActor("Only the ordering customer can cancel", order_id=order_id)
        _guard(order, OrderStatus.cancelled)
        _transition(db, order, expected=OrderStatus.pending, new=OrderStatus.cancelled, now=now)
        record_event(
            db,
            order_id=order.id,
            event_type=EventType.cancelled,
            actor_id=customer_id,
            actor_role=ActorRole.customer.value,
            now=now,
        )
        notify_pharmacy(db, order, EventType.cancelled, now=now)

    logger.info("[OMS] Order %s cancelled by customer", order_id)
    return order


def expire_order(db: Session, order_id: int, *, now: datetime | None = None) -> Order:
    """
    Idempotent : une commande non `pending`, ou dont l'échéance n'est pas
    passée, est rendue telle quelle (pas d'erreur, pas d'événement).
    """
    now = now or utcnow()

    with _unit_of_work(db):
        order = _load_order(db, order_id)
        if order.status == OrderStatus.pending and _deadline_passed(order, now):
            _apply_expire(db, order, now)

    return order


# ---------- Lecture ----------
def get_order(db: Session, order_id: int, *, tenant_id: str | None = None) -> Order:
    order = db.get(Order, order_id)
    # autre tenant = même réponse que "inexistante"
    if order is None or (tenant_id is not None and order.tenant_id != tenant_id):
        raise NotFoundError("Order not found", order_id=order_id)
    return order


def count_by_status(db: Session, *, tenant_id: str) -> dict[str, int]:
    rows = db.execute(
        select(Order.status, func.count(Order.id))
        .where(Order.tenant_id == tenant_id)
        .group_by(Order.status)
    ).all()
    return {status.value: int(n) for status, n in rows}


def list_orders(
    db: Session,
    *,
    tenant_id: str,
    status: OrderStatus | str | None = None,
) -> tuple[list[Order], dict[str, int]]:
    stmt = select(Order).where(Order.tenant_id == tenant_id)
    if status is not None:
        try:
            stmt = stmt.where(Order.status == OrderStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown order status: {status}", status=status) from None

    orders = list(db.execute(stmt.order_by(Order.created_at.desc(), Order.id.desc())).scalars().all())
    return orders, count_by_status(db, tenant_id=tenant_id)


def order_stats(db: Session, *, tenant_id: str) -> dict[str, Any]:
    counts = count_by_status(db, tenant_id=tenant_id)
    revenue = db.execute(
        select(func.coalesce(func.sum(Order.total), 0))
        .where(Order.tenant_id == tenant_id)
        .where(Order.status == OrderStatus.completed)
    ).scalar_one()

    return {
        "total_orders": sum(counts.values()),
        "counts": {s.value: counts.get(s.value, 0) for s in OrderStatus},
        "total_revenue": Decimal(str(revenue)),
    }
