"""Collects the target groups of one refresh cycle into a snapshot."""

import asyncio

from .fanout import QueryFanout
from .models import Snapshot, TargetGroup


class _Done:
    """Marks the end of a cycle on the shared queue."""


_DONE = _Done()


async def collect(queue: asyncio.Queue) -> list[TargetGroup]:
    """Drain target groups in arrival order until the end marker."""
    groups: list[TargetGroup] = []
    while True:
        item = await queue.get()
        if item is _DONE:
            return groups
        groups.append(item)


class SnapshotAggregator:
    """Owns the accumulating group list for each refresh cycle.

    The fan-out tasks only ever put onto the queue; the collector task is the
    sole writer of the list, so no locking is needed.
    """

    def __init__(self, fanout: QueryFanout):
        self.fanout = fanout

    async def refresh(self, stop: asyncio.Event) -> Snapshot:
        """Run one refresh cycle and return its snapshot.

        Always returns a snapshot, empty when nothing was found.
        """
        queue: asyncio.Queue = asyncio.Queue()
        collector = asyncio.create_task(collect(queue))
        try:
            outcomes = await self.fanout.run(queue, stop)
        except BaseException:
            collector.cancel()
            raise

        queue.put_nowait(_DONE)
        groups = await collector
        return Snapshot(groups=groups, outcomes=outcomes)
