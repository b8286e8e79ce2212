"""
Sweeper des commandes expirées.

Chaque tick : toutes les commandes `pending` dont expires_at est passé
sont expirées une par une. Une erreur sur une commande est loggée et le
sweep continue. Pas de file d'attente : un tick manqué est rattrapé par le
suivant (requête à l'instant t).

La boucle tourne dans la même boucle asyncio que l'API ; le travail DB
(synchrone) part dans le thread pool.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.core.clock import Clock, utcnow
from backend.app.core.config import settings
from backend.app.db.models.core_types import OrderStatus
from backend.app.db.models.models_v1 import Order
from backend.services.orders import expire_order

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def find_stale_order_ids(db: Session, *, now: datetime) -> list[int]:
    return [
        int(oid)
        for oid in db.execute(
            select(Order.id)
            .where(Order.status == OrderStatus.pending)
            .where(Order.expires_at.is_not(None))
            .where(Order.expires_at < now)
            .order_by(Order.expires_at.asc(), Order.id.asc())
        )
        .scalars()
        .all()
    ]


def sweep_expired(session_factory: SessionFactory, *, now: datetime | None = None) -> int:
    """Retourne le nombre de commandes effectivement expirées."""
    now = now or utcnow()
    db = session_factory()
    expired = 0

    try:
        order_ids = find_stale_order_ids(db, now=now)
        db.rollback()  # fin de la lecture

        for order_id in order_ids:
            try:
                order = expire_order(db, order_id, now=now)
            except Exception:
                db.rollback()
                logger.exception("[SWEEPER] Failed to expire order %s", order_id)
                continue
            if order.status == OrderStatus.expired:
                expired += 1

        if expired:
            logger.info("[SWEEPER] Auto-rejected %s expired orders", expired)
        else:
            logger.debug("[SWEEPER] No expired orders")
    finally:
        db.close()

    return expired


class TimeoutSweeper:
    """Tâche périodique ; une instance par application (lifespan FastAPI)."""

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        interval_seconds: float = settings.SWEEP_INTERVAL_SECONDS,
        initial_delay_seconds: float = settings.SWEEP_INITIAL_DELAY_SECONDS,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self._clock = clock
        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> int:
        self.ticks += 1
        return sweep_expired(self._session_factory, now=self._clock())

    async def _wait_stop(self, seconds: float) -> bool:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def _loop(self) -> None:
        logger.info("[SWEEPER] Started. Interval: %ss", self.interval_seconds)

        if await self._wait_stop(self.initial_delay_seconds):
            return

        loop = asyncio.get_running_loop()
        while True:
            try:
                await loop.run_in_executor(None, self.tick)
            except Exception:
                logger.exception("[SWEEPER] Tick failed")

            if await self._wait_stop(self.interval_seconds):
                break

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("[SWEEPER] Stopped")
