"""Concurrent per-service-name querying."""

import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator

from ..interfaces import NetworkInterface
from .mapper import map_entry
from .models import HTTP_SERVICE, HTTPS_SERVICE, QueryOutcome, QueryStatus, ServiceEntry, TargetGroup
from .transport import QueryTransport

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAMES = [HTTP_SERVICE, HTTPS_SERVICE]


class _Cancelled(Exception):
    """The stop event fired while waiting on the transport."""


async def _next(stream: AsyncIterator[ServiceEntry]) -> ServiceEntry:
    return await stream.__anext__()


async def _abandon(receive: asyncio.Future) -> None:
    """Cancel a pending receive and wait until the transport has unwound."""
    receive.cancel()
    await asyncio.wait({receive})
    if not receive.cancelled():
        # Finished before the cancel landed; its result is dropped
        receive.exception()


async def _receive(stream: AsyncIterator[ServiceEntry], stop: asyncio.Event) -> ServiceEntry:
    """Wait for the next entry or the stop event, whichever comes first.

    Raises:
        StopAsyncIteration: The stream is exhausted.
        _Cancelled: The stop event fired first.
    """
    receive = asyncio.ensure_future(_next(stream))
    stopped = asyncio.ensure_future(stop.wait())
    try:
        await asyncio.wait({receive, stopped}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        # The query task itself was cancelled
        await _abandon(receive)
        raise
    finally:
        stopped.cancel()

    if not receive.done():
        await _abandon(receive)
        raise _Cancelled()

    return receive.result()


class QueryFanout:
    """Runs one query task per service name and interface.

    Every task maps the entries it receives and forwards the resulting target
    groups to a shared queue as soon as they arrive.
    """

    def __init__(
        self,
        transport: QueryTransport,
        service_names: list[str] | None = None,
        interfaces: list[NetworkInterface] | None = None,
        ipv4_only: bool = False,
        secure_service_name: str = HTTPS_SERVICE,
    ):
        """Initialize the fan-out.

        Args:
            transport: Source of raw mDNS responses.
            service_names: Services to query each cycle.
            interfaces: Interfaces to query on; empty means one unscoped query
                per service name.
            ipv4_only: Drop entries without an IPv4 address.
            secure_service_name: Service name whose targets use https.
        """
        self.transport = transport
        self.service_names = list(service_names or DEFAULT_SERVICE_NAMES)
        self.interfaces = list(interfaces or [])
        self.ipv4_only = ipv4_only
        self.secure_service_name = secure_service_name

    def _jobs(self) -> list[tuple[str, NetworkInterface | None]]:
        scopes: list[NetworkInterface | None] = list(self.interfaces) or [None]
        return [(name, iface) for name in self.service_names for iface in scopes]

    async def run(
        self,
        out: asyncio.Queue[TargetGroup],
        stop: asyncio.Event,
    ) -> list[QueryOutcome]:
        """Run all queries concurrently until each stream closes.

        Args:
            out: Shared queue receiving mapped target groups.
            stop: Cancellation signal shared by every task.

        Returns:
            One outcome per query task, in job order.
        """
        tasks = [
            asyncio.create_task(self._query(name, iface, out, stop))
            for name, iface in self._jobs()
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _query(
        self,
        service_name: str,
        interface: NetworkInterface | None,
        out: asyncio.Queue[TargetGroup],
        stop: asyncio.Event,
    ) -> QueryOutcome:
        outcome = QueryOutcome(
            service_name=service_name,
            interface=interface.name if interface else None,
            status=QueryStatus.COMPLETED,
        )
        if stop.is_set():
            outcome.status = QueryStatus.CANCELLED
            return outcome

        try:
            async with aclosing(self.transport.query(service_name, interface)) as stream:
                while True:
                    try:
                        entry = await _receive(stream, stop)
                    except StopAsyncIteration:
                        break

                    group = map_entry(entry, self.ipv4_only, self.secure_service_name)
                    if group is None:
                        outcome.dropped += 1
                        continue

                    if stop.is_set():
                        raise _Cancelled()
                    out.put_nowait(group)
                    outcome.forwarded += 1
        except _Cancelled:
            outcome.status = QueryStatus.CANCELLED
        except Exception as e:
            # One failing service must not affect the others; the next
            # refresh cycle is the retry.
            outcome.status = QueryStatus.FAILED
            outcome.error = f"{type(e).__name__}: {e}"

        logger.debug(
            f"Query {service_name} on {outcome.interface or 'all interfaces'}: "
            f"{outcome.status.value}, forwarded={outcome.forwarded}, dropped={outcome.dropped}"
            + (f", error={outcome.error}" if outcome.error else "")
        )
        return outcome
