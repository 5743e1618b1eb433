"""Cancellable periodic task.

Each tick runs as its own task, so a slow tick does not delay the next one
and ticks may overlap.  Work scheduled this way must be idempotent.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

_logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run *callback* every *interval* seconds until stopped.

    Usage::

        async with PeriodicTask("sweep", sweep.run_once, 60.0):
            ...

    Parameters
    ----------
    name : str
        Used in task names and log messages.
    callback : callable
        Coroutine function invoked once per tick.
    interval : float
        Seconds between the start of two ticks.
    sleep : callable
        Awaitable sleep, injectable for deterministic tests.
    run_immediately : bool
        Fire the first tick at start instead of after one interval.
    """

    def __init__(
        self,
        name: str,
        callback: Callable[[], Awaitable[Any]],
        interval: float,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        run_immediately: bool = False,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._name = name
        self._callback = callback
        self._interval = interval
        self._sleep = sleep
        self._run_immediately = run_immediately
        self._loop_task: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[None]] = set()
        self._ticks = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def ticks(self) -> int:
        """Number of ticks launched so far."""
        return self._ticks

    async def __aenter__(self) -> PeriodicTask:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    def start(self) -> None:
        """Start the repeating loop on the running event loop (no-op if running)."""
        if self.is_running:
            return
        self._loop_task = asyncio.create_task(self._run(), name=f"{self._name}-loop")
        _logger.debug("Periodic task %s started (every %.1fs)", self._name, self._interval)

    async def stop(self, *, cancel_inflight: bool = False) -> None:
        """Stop scheduling ticks and wait for the ones already running.

        With ``cancel_inflight`` the running ticks are cancelled instead of
        awaited.
        """
        loop_task = self._loop_task
        self._loop_task = None
        if loop_task is not None:
            loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await loop_task

        pending = list(self._inflight)
        if cancel_inflight:
            for task in pending:
                task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        _logger.debug("Periodic task %s stopped after %d ticks", self._name, self._ticks)

    async def run_now(self) -> Any:
        """Run one tick inline and return the callback's result."""
        return await self._callback()

    async def _run(self) -> None:
        if self._run_immediately:
            self._spawn()
        while True:
            await self._sleep(self._interval)
            self._spawn()

    def _spawn(self) -> None:
        self._ticks += 1
        task = asyncio.create_task(self._tick(), name=f"{self._name}-tick-{self._ticks}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _tick(self) -> None:
        try:
            await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            _logger.exception("Periodic task %s tick failed", self._name)
