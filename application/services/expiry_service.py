"""
Expiry reconciliation - cancels pending orders nobody claimed in time.

Candidate selection is a plain read; each cancellation re-checks the full
predicate in its own conditional UPDATE, so an order accepted between the
read and the write is left alone.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Callable, List, Optional

from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderStatus, ensure_utc, utc_now
from domain.order.repository import OrderQuery


logger = get_logger(__name__)


@dataclass(frozen=True)
class SweepResult:
    cancelled_count: int = 0
    failed_count: int = 0
    candidates: int = 0
    cancelled_order_ids: tuple[str, ...] = field(default_factory=tuple)


class ExpiryReconciler:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        batch_size: Optional[int] = 500,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._uow_factory = uow_factory
        self._batch_size = batch_size
        self._clock = clock

    async def _select_stale(self, now: datetime, skip: int = 0) -> List[str]:
        query = OrderQuery(
            status=OrderStatus.PENDING,
            has_driver=False,
            expires_before=now,
            skip=skip,
            limit=self._batch_size,
        )
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.order_repository.find(query)
        return [o.order_id for o in orders]

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """Cancel every stale pending order. Per-order failures do not stop the sweep."""
        now = ensure_utc(now) if now else self._clock()

        seen: set[str] = set()
        cancelled: list[str] = []
        failed = 0
        while True:
            # cancelled orders leave the candidate set; failed ones stay and are skipped over
            batch = await self._select_stale(now, skip=failed)
            fresh = [order_id for order_id in batch if order_id not in seen]
            seen.update(fresh)
            for order_id in fresh:
                try:
                    async with self._uow_factory() as uow:
                        changed = await uow.order_repository.cancel_if_unclaimed(order_id, now)
                except Exception:
                    failed += 1
                    logger.error("expiry_cancel_failed", order_id=order_id, exc_info=True)
                    continue
                if changed:
                    cancelled.append(order_id)
                    logger.info("order_expired", order_id=order_id)
                else:
                    logger.info("order_expiry_skipped", order_id=order_id)
            if self._batch_size is None or len(batch) < self._batch_size or not fresh:
                break

        result = SweepResult(
            cancelled_count=len(cancelled),
            failed_count=failed,
            candidates=len(seen),
            cancelled_order_ids=tuple(cancelled),
        )
        logger.info(
            "expiry_sweep_completed",
            candidates=result.candidates,
            cancelled=result.cancelled_count,
            failed=result.failed_count,
        )
        return result


class ExpiryScheduler:
    """Runs a sweep for every timestamp yielded by ``ticker``."""

    def __init__(self, reconciler: ExpiryReconciler):
        self.reconciler = reconciler
        self.runs = 0
        self.last_result: Optional[SweepResult] = None

    async def run(self, ticker: AsyncIterator[datetime]) -> int:
        async for tick in ticker:
            try:
                self.last_result = await self.reconciler.sweep(tick)
            except Exception:
                # a failed selection is retried on the next tick
                logger.error("expiry_sweep_failed", exc_info=True)
            self.runs += 1
        return self.runs


async def interval_ticker(
    seconds: float,
    *,
    clock: Callable[[], datetime] = utc_now,
) -> AsyncIterator[datetime]:
    """Yield the current time every ``seconds`` forever."""
    while True:
        await asyncio.sleep(seconds)
        yield clock()
