"""Periodic refresh of the discovered targets."""

import asyncio
import logging
from enum import Enum
from typing import AsyncIterator

from .aggregator import SnapshotAggregator
from .models import Snapshot

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    """Lifecycle of a RefreshScheduler."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class RefreshScheduler:
    """Runs a refresh cycle immediately and then on every interval tick.

    Snapshots are produced by :meth:`snapshots`, an async generator that ends
    once the stop event is set. Ticks missed while a cycle was running are
    dropped, except for one that fires right away.
    """

    def __init__(
        self,
        aggregator: SnapshotAggregator,
        interval_seconds: float = 10.0,
        stop_event: asyncio.Event | None = None,
    ):
        """Initialize the scheduler.

        Args:
            aggregator: Runs a single refresh cycle.
            interval_seconds: Time between scheduled refresh cycles.
            stop_event: Cancellation signal; a new event is created if omitted.
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval must be positive, got {interval_seconds}")

        self.aggregator = aggregator
        self.interval = interval_seconds
        self.stop_event = stop_event or asyncio.Event()
        self.state = SchedulerState.IDLE
        self.cycles = 0

    def stop(self) -> None:
        """Signal cancellation; the snapshot stream ends shortly after."""
        self.stop_event.set()

    async def _wait_for_tick(self, deadline: float) -> bool:
        """Sleep until the deadline. Returns False if stopped first."""
        timeout = max(0.0, deadline - asyncio.get_running_loop().time())
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout)
        except asyncio.TimeoutError:
            return True
        return False

    def _next_deadline(self, deadline: float, now: float) -> float:
        deadline += self.interval
        if deadline <= now:
            missed = (now - deadline) // self.interval + 1
            deadline += missed * self.interval
        return deadline

    async def _refresh(self) -> Snapshot | None:
        self.cycles += 1
        snapshot = await self.aggregator.refresh(self.stop_event)
        if self.stop_event.is_set():
            # Partial result of an interrupted cycle
            return None

        failed = snapshot.failed_queries
        logger.debug(
            f"Refresh cycle {self.cycles}: {len(snapshot.groups)} target groups, "
            f"{len(failed)} failed queries"
        )
        return snapshot

    async def snapshots(self) -> AsyncIterator[Snapshot]:
        """Yield one snapshot per refresh cycle until stopped."""
        if self.state is not SchedulerState.IDLE:
            raise RuntimeError(f"Scheduler cannot start from state {self.state.value}")

        loop = asyncio.get_running_loop()
        self.state = SchedulerState.RUNNING
        logger.info(f"Refresh scheduler started (interval={self.interval}s)")

        try:
            deadline = loop.time() + self.interval
            # Initial set right away, without waiting for the first tick
            snapshot = await self._refresh()
            if snapshot is not None:
                yield snapshot

            while not self.stop_event.is_set():
                if not await self._wait_for_tick(deadline):
                    break
                deadline = self._next_deadline(deadline, loop.time())

                snapshot = await self._refresh()
                if snapshot is None:
                    break
                yield snapshot
        finally:
            self.state = SchedulerState.STOPPED
            logger.info("Refresh scheduler stopped")
