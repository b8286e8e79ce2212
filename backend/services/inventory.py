"""
Ledger d'inventaire.

Seul module autorisé à modifier Product.total_quantity et StockBatch.quantity.

Règles :
- FEFO : on consomme les lots par date d'expiration croissante
- vérification + déduction dans la MÊME transaction, produits verrouillés
  (FOR UPDATE, ordre d'id croissant pour éviter les deadlocks)
- décrément conditionnel de l'agrégat (jamais sous la quantité demandée)
- chaque débit de lot est tracé (BatchAllocation) pour une restauration exacte

Aucune fonction ne commit : l'appelant possède la transaction et rollback
sur erreur, ce qui annule les décréments partiels.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from backend.app.core.clock import utcnow
from backend.app.core.exceptions import InsufficientInventory, LedgerConsistencyError
from backend.app.db.models.models_v1 import BatchAllocation, Product, StockBatch

logger = logging.getLogger(__name__)


class LineLike(Protocol):
    product_id: int
    product_name: str
    quantity: int


@dataclass(frozen=True)
class StockDrift:
    product_id: int
    product_name: str
    total_quantity: int
    batch_quantity: int


def _demand_by_product(lines: Iterable[LineLike]) -> dict[int, tuple[str, int]]:
    # Deux lignes sur le même produit = une seule demande cumulée
    demand: dict[int, tuple[str, int]] = {}
    for line in lines:
        pid = int(line.product_id)
        name, qty = demand.get(pid, (line.product_name, 0))
        demand[pid] = (name, qty + int(line.quantity))
    return demand


def _lock_products(db: Session, *, tenant_id: str, product_ids: Iterable[int]) -> dict[int, Product]:
    ids = sorted({int(pid) for pid in product_ids})
    if not ids:
        return {}

    rows = (
        db.execute(
            select(Product)
            .where(Product.tenant_id == tenant_id)
            .where(Product.id.in_(ids))
            .order_by(Product.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )
    return {int(p.id): p for p in rows}


def _fefo_batches(db: Session, *, tenant_id: str, product_id: int, only_in_stock: bool) -> list[StockBatch]:
    stmt = (
        select(StockBatch)
        .where(StockBatch.tenant_id == tenant_id)
        .where(StockBatch.product_id == product_id)
    )
    if only_in_stock:
        stmt = stmt.where(StockBatch.quantity > 0)

    return list(
        db.execute(
            stmt.order_by(StockBatch.expiry_date.asc().nulls_last(), StockBatch.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )


def _unavailable(demand: dict[int, tuple[str, int]], products: dict[int, Product]) -> list[str]:
    missing = []
    for pid in sorted(demand):
        name, qty = demand[pid]
        product = products.get(pid)
        if product is None or product.total_quantity < qty:
            missing.append(name)
    return missing


def check_availability(db: Session, *, tenant_id: str, lines: Iterable[LineLike]) -> list[str]:
    """
    Retourne les noms des lignes indisponibles (liste vide = commande servable).

    Les produits restent verrouillés jusqu'à la fin de la transaction courante :
    appeler deduct_stock() dans la même transaction.
    """
    demand = _demand_by_product(lines)
    products = _lock_products(db, tenant_id=tenant_id, product_ids=demand.keys())
    return _unavailable(demand, products)


def deduct_stock(
    db: Session,
    *,
    tenant_id: str,
    lines: Iterable[LineLike],
    order_id: int,
    now: datetime | None = None,
) -> list[BatchAllocation]:
    """
    Déduit la demande de l'agrégat produit puis des lots (FEFO).

    Lève :
    - InsufficientInventory si un agrégat ne couvre pas la demande
    - LedgerConsistencyError si l'agrégat couvrait mais pas les lots
    """
    now = now or utcnow()
    demand = _demand_by_product(lines)
    products = _lock_products(db, tenant_id=tenant_id, product_ids=demand.keys())

    unavailable = _unavailable(demand, products)
    if unavailable:
        raise InsufficientInventory(unavailable)

    allocations: list[BatchAllocation] = []

    for pid in sorted(demand):
        name, qty = demand[pid]

        # ---------- AGRÉGAT (décrément conditionnel) ----------
        result = db.execute(
            update(Product)
            .where(Product.id == pid)
            .where(Product.tenant_id == tenant_id)
            .where(Product.total_quantity >= qty)
            .values(total_quantity=Product.total_quantity - qty)
        )
        if result.rowcount != 1:
            raise InsufficientInventory([name])

        # ---------- LOTS (FEFO) ----------
        remaining = qty
        for batch in _fefo_batches(db, tenant_id=tenant_id, product_id=pid, only_in_stock=True):
            if remaining <= 0:
                break

            take = min(remaining, batch.quantity)
            batch.quantity -= take
            remaining -= take

            alloc = BatchAllocation(
                order_id=order_id,
                batch_id=batch.id,
                product_id=pid,
                quantity=take,
                created_at=now,
            )
            db.add(alloc)
            allocations.append(alloc)
            logger.info("[OMS] Deducted %s units from stock batch %s", take, batch.batch_number)

        if remaining > 0:
            raise LedgerConsistencyError(
                f"Batches of product {pid} short by {remaining} units while aggregate allowed {qty}",
                product_id=pid,
                requested=qty,
                missing=remaining,
            )

        logger.info("[OMS] Deducted %s units of %s for order %s", qty, name, order_id)

    db.flush()
    return allocations


def restore_stock(
    db: Session,
    *,
    tenant_id: str,
    lines: Iterable[LineLike],
    order_id: int,
    now: datetime | None = None,
) -> None:
    """
    Rend la demande à l'agrégat et aux lots.

    Les allocations enregistrées par deduct_stock() sont rendues à leur lot
    d'origine. Sans allocation (commande antérieure au suivi par lot), le
    reliquat va au lot qui expire le plus tôt.
    """
    now = now or utcnow()
    demand = _demand_by_product(lines)
    products = _lock_products(db, tenant_id=tenant_id, product_ids=demand.keys())

    open_allocations = (
        db.execute(
            select(BatchAllocation)
            .where(BatchAllocation.order_id == order_id)
            .where(BatchAllocation.released_at.is_(None))
            .order_by(BatchAllocation.id.asc())
            .with_for_update()
        )
        .scalars()
        .all()
    )

    for pid in sorted(demand):
        name, qty = demand[pid]
        if pid not in products:
            raise LedgerConsistencyError(
                f"Cannot restore stock: product {pid} not found for tenant {tenant_id}",
                product_id=pid,
            )

        db.execute(
            update(Product)
            .where(Product.id == pid)
            .where(Product.tenant_id == tenant_id)
            .values(total_quantity=Product.total_quantity + qty)
        )

        returned = 0
        for alloc in (a for a in open_allocations if a.product_id == pid):
            batch = db.get(StockBatch, alloc.batch_id, with_for_update=True, populate_existing=True)
            batch.quantity += alloc.quantity
            alloc.released_at = now
            returned += alloc.quantity
            logger.info("[OMS] Restored %s units to stock batch %s", alloc.quantity, batch.batch_number)

        leftover = qty - returned
        if leftover < 0:
            raise LedgerConsistencyError(
                f"Allocations for product {pid} exceed ordered quantity",
                product_id=pid,
                ordered=qty,
                allocated=returned,
            )
        if leftover > 0:
            batches = _fefo_batches(db, tenant_id=tenant_id, product_id=pid, only_in_stock=False)
            if not batches:
                raise LedgerConsistencyError(
                    f"Cannot restore {leftover} units of product {pid}: no stock batch",
                    product_id=pid,
                    missing=leftover,
                )
            batches[0].quantity += leftover
            logger.info("[OMS] Restored %s units to stock batch %s", leftover, batches[0].batch_number)

        logger.info("[OMS] Restored %s units of %s for order %s", qty, name, order_id)

    db.flush()


def rebuild_total_quantity(
    db: Session,
    *,
    tenant_id: str,
    product_ids: Iterable[int],
) -> None:
    """
    Rebuild Product.total_quantity à partir des lots (source de vérité).

    Propriétés :
    - déterministe
    - idempotent
    - transaction-safe (FOR UPDATE)
    """
    products = _lock_products(db, tenant_id=tenant_id, product_ids=(p for p in product_ids if p is not None))
    if not products:
        return

    rows = db.execute(
        select(
            StockBatch.product_id,
            func.coalesce(func.sum(StockBatch.quantity), 0).label("batch_qty"),
        )
        .where(StockBatch.tenant_id == tenant_id)
        .where(StockBatch.product_id.in_(list(products)))
        .group_by(StockBatch.product_id)
    ).all()
    batch_qty = {int(pid): int(qty) for pid, qty in rows}

    for pid, product in products.items():
        product.total_quantity = batch_qty.get(pid, 0)

    db.flush()


def find_stock_drift(db: Session, *, tenant_id: str) -> list[StockDrift]:
    """Produits dont l'agrégat diffère de la somme des lots."""
    batch_sum = (
        select(
            StockBatch.product_id.label("product_id"),
            func.sum(StockBatch.quantity).label("batch_qty"),
        )
        .where(StockBatch.tenant_id == tenant_id)
        .group_by(StockBatch.product_id)
        .subquery()
    )

    rows = db.execute(
        select(
            Product.id,
            Product.name,
            Product.total_quantity,
            func.coalesce(batch_sum.c.batch_qty, 0),
        )
        .outerjoin(batch_sum, batch_sum.c.product_id == Product.id)
        .where(Product.tenant_id == tenant_id)
        .order_by(Product.id.asc())
    ).all()

    return [
        StockDrift(
            product_id=int(pid),
            product_name=name,
            total_quantity=int(total),
            batch_quantity=int(batch_qty),
        )
        for pid, name, total, batch_qty in rows
        if int(total) != int(batch_qty)
    ]
