"""Reconciliation sweep.

Periodically closes trips whose vehicle has not been seen for longer than
the exit threshold.  Each idle trip is handed to the exit resolver on its
own; one failing trip is logged and left in progress for the next tick
while the rest of the batch carries on.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from anprtoll._constants import TRIPS_COLLECTION
from anprtoll.exceptions import TollError
from anprtoll.models.trip import Trip, TripStatus
from anprtoll.resolver import ExitOutcome, ExitResolver
from anprtoll.scheduler import PeriodicTask
from anprtoll.store.base import Document, DocumentStore, Filter

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class SweepReport:
    """Summary of one sweep pass, for logs and tests."""

    started_at: datetime
    scanned: int = 0
    outcomes: Counter[ExitOutcome] = field(default_factory=Counter)
    failed: list[str] = field(default_factory=list)

    @property
    def resolved(self) -> int:
        return sum(count for outcome, count in self.outcomes.items() if outcome is not ExitOutcome.ALREADY_RESOLVED)


class ReconciliationSweep:
    """Finds idle in-progress trips and resolves them."""

    def __init__(
        self,
        store: DocumentStore,
        resolver: ExitResolver,
        *,
        exit_threshold: float = 600.0,
        interval: float = 60.0,
        concurrency: int = 8,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._exit_threshold = timedelta(seconds=exit_threshold)
        self._concurrency = concurrency
        self._clock = clock
        self._schedule = PeriodicTask("reconciliation-sweep", self.run_once, interval, sleep=sleep)

    @property
    def is_running(self) -> bool:
        return self._schedule.is_running

    def start(self) -> None:
        self._schedule.start()

    async def stop(self) -> None:
        await self._schedule.stop()

    async def idle_trips(self, now: datetime) -> list[Document]:
        """In-progress trips last seen before ``now - exit_threshold``."""
        cutoff = now - self._exit_threshold
        return await self._store.query(
            TRIPS_COLLECTION,
            Filter("status", "==", TripStatus.IN_PROGRESS),
            Filter("lastSightingTimestamp", "<", cutoff),
        )

    async def run_once(self) -> SweepReport:
        """One pass over the idle trips."""
        now = self._clock()
        report = SweepReport(started_at=now)
        _logger.debug("Checking for vehicles that exited their zone")

        try:
            docs = await self.idle_trips(now)
        except TollError as exc:
            _logger.error("Sweep query failed, retrying next tick: %s", exc)
            return report

        report.scanned = len(docs)
        if not docs:
            return report

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _process(doc: Document) -> None:
            async with semaphore:
                try:
                    trip = Trip.from_document(doc)
                    outcome = await self._resolver.resolve(trip)
                except Exception:
                    _logger.exception(
                        "Failed to resolve trip %s (%s); it stays in progress",
                        doc.id,
                        doc.data.get("plate"),
                    )
                    report.failed.append(doc.id)
                    return
                report.outcomes[outcome] += 1

        await asyncio.gather(*(_process(doc) for doc in docs))

        _logger.info(
            "Sweep finished: %d idle, %d resolved (%s), %d failed",
            report.scanned,
            report.resolved,
            ", ".join(f"{outcome.value}={count}" for outcome, count in sorted(report.outcomes.items())),
            len(report.failed),
        )
        return report
