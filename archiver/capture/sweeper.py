"""Background task that periodically sweeps expiring in-memory stores."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class Sweepable(Protocol):
    def sweep(self) -> int: ...


class PeriodicSweeper:
    """Calls ``sweep()`` on every target once per *interval* seconds.

    Usage::

        sweeper = PeriodicSweeper(900, cache, ledger)
        sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(self, interval: float, *targets: Sweepable) -> None:
        self.interval = interval
        self.targets = targets
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep_once(self) -> int:
        removed = 0
        for target in self.targets:
            try:
                removed += target.sweep()
            except Exception:
                logger.exception("[SWEEP] Sweep failed for %r", target)
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.sweep_once()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run(), name="archiver-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
