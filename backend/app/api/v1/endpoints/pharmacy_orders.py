from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.deps import Actor, get_actor, get_db
from backend.app.schemas.order import (
    AcceptIn,
    CompleteIn,
    DashboardStats,
    OrderDetailRead,
    OrderListRead,
    OrderRead,
    RejectIn,
)
from backend.services import orders as oms
from backend.services.order_events import list_events

router = APIRouter(prefix="/pharmacy")


@router.get("/orders", response_model=OrderListRead)
def list_pharmacy_orders(
    status: str | None = None,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    orders, counts = oms.list_orders(db, tenant_id=actor.tenant_id, status=status)
    return {"orders": orders, "counts": counts}


@router.get("/orders/{order_id}", response_model=OrderDetailRead)
def get_pharmacy_order(order_id: int, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    order = oms.get_order(db, order_id, tenant_id=actor.tenant_id)
    return {"order": order, "events": list_events(db, order.id)}


@router.post("/orders/{order_id}/accept", response_model=OrderRead)
def accept(
    order_id: int,
    payload: AcceptIn | None = None,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return oms.accept_order(
        db,
        order_id,
        actor_id=actor.user_id,
        estimated_minutes=payload.estimated_minutes if payload else None,
        tenant_id=actor.tenant_id,
    )


@router.post("/orders/{order_id}/reject", response_model=OrderRead)
def reject(order_id: int, payload: RejectIn, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return oms.reject_order(
        db,
        order_id,
        actor_id=actor.user_id,
        reason=payload.reason,
        tenant_id=actor.tenant_id,
    )


@router.post("/orders/{order_id}/preparing", response_model=OrderRead)
def preparing(order_id: int, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return oms.mark_preparing(db, order_id, actor_id=actor.user_id, tenant_id=actor.tenant_id)


@router.post("/orders/{order_id}/ready", response_model=OrderRead)
def ready(order_id: int, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return oms.mark_ready(db, order_id, actor_id=actor.user_id, tenant_id=actor.tenant_id)


@router.post("/orders/{order_id}/complete", response_model=OrderRead)
def complete(order_id: int, payload: CompleteIn, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return oms.complete_order(
        db,
        order_id,
        actor_id=actor.user_id,
        payment_method=payload.payment_method,
        tenant_id=actor.tenant_id,
    )


@router.get("/dashboard/stats", response_model=DashboardStats)
def dashboard_stats(actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return oms.order_stats(db, tenant_id=actor.tenant_id)
