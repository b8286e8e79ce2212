from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from backend.app.api.deps import Actor, get_actor, get_db
from backend.app.db.models.models_v1 import Product
from backend.app.schemas.stock import ProductStockRead

router = APIRouter(prefix="/stock")


@router.get(
    "",
    response_model=list[ProductStockRead],
)
def get_stock(
    product_id: int | None = None,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """
    Stock (READ ONLY)
    - total_quantity n'est modifié que par le ledger (accept/reject)
    - lots triés par expiration (ordre FEFO)
    """

    stmt = (
        select(Product)
        .where(Product.tenant_id == actor.tenant_id)
        .options(selectinload(Product.batches))
        .order_by(Product.name)
    )

    if product_id is not None:
        stmt = stmt.where(Product.id == product_id)

    return db.execute(stmt).scalars().all()
