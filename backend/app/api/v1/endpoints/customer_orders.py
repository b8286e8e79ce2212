from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.deps import Actor, get_actor, get_db
from backend.app.schemas.order import OrderCreate, OrderRead
from backend.services import orders as oms

router = APIRouter(prefix="/orders")


@router.post("", response_model=OrderRead, status_code=201)
def place_order(payload: OrderCreate, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    # le client commande pour lui-même
    payload = payload.model_copy(
        update={"customer_id": actor.user_id, "customer_tenant_id": actor.tenant_id}
    )
    return oms.place_order(db, payload)


@router.post("/{order_id}/cancel", response_model=OrderRead)
def cancel_order(order_id: int, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return oms.cancel_order(db, order_id, customer_id=actor.user_id)
