"""mDNS query transport.

The discovery engine only depends on :class:`QueryTransport`: given a service
name and an optional interface it streams raw :class:`ServiceEntry` records and
closes the stream once the query window is over. :class:`ZeroconfTransport`
implements it on top of python-zeroconf.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from zeroconf import IPVersion, ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from ..interfaces import NetworkInterface
from .models import ServiceEntry

logger = logging.getLogger(__name__)

MDNS_DOMAIN = "local."

# Floor for resolving an instance announced at the very end of the window
MIN_RESOLVE_SECONDS = 0.1


def qualify_service_name(service_name: str) -> str:
    """Turn "_svc._tcp" into the fully qualified "_svc._tcp.local."."""
    name = service_name.rstrip(".")
    if name.endswith(".local"):
        return f"{name}."
    return f"{name}.{MDNS_DOMAIN}"


def split_txt(text: bytes | None) -> tuple[str, ...]:
    """Split a raw TXT record into its strings, keeping wire order.

    Each string is length-prefixed; empty strings are skipped.
    """
    if not text:
        return ()

    fields = []
    offset = 0
    while offset < len(text):
        length = text[offset]
        chunk = text[offset + 1 : offset + 1 + length]
        offset += 1 + length
        if chunk:
            fields.append(chunk.decode("utf-8", "replace"))
    return tuple(fields)


def entry_from_info(service_name: str, info: AsyncServiceInfo) -> ServiceEntry:
    """Convert a resolved zeroconf service info into a ServiceEntry."""
    v4 = info.parsed_addresses(IPVersion.V4Only)
    v6 = info.parsed_addresses(IPVersion.V6Only)
    return ServiceEntry(
        service_name=service_name,
        host=info.server or info.name,
        port=info.port or 0,
        addr_v4=v4[0] if v4 else None,
        addr_v6=v6[0] if v6 else None,
        info_fields=split_txt(info.text),
    )


class QueryTransport(ABC):
    """Abstract source of raw mDNS responses."""

    @abstractmethod
    def query(
        self,
        service_name: str,
        interface: NetworkInterface | None = None,
    ) -> AsyncIterator[ServiceEntry]:
        """Stream the responses for one service name.

        Args:
            service_name: Service to query, e.g. "_prometheus-http._tcp".
            interface: Restrict the query to this interface, or None for the
                library default.

        Returns:
            Async generator of entries; exhausted when the query is done.
        """


class ZeroconfTransport(QueryTransport):
    """Queries services with a short-lived python-zeroconf browser."""

    def __init__(self, timeout_seconds: float = 1.0):
        """Initialize the transport.

        Args:
            timeout_seconds: How long each query browses for instances.
        """
        self.timeout_seconds = timeout_seconds

    def _zeroconf_kwargs(self, interface: NetworkInterface | None) -> dict[str, Any]:
        if interface is None:
            return {}
        return {"interfaces": list(interface.addresses)}

    async def _resolve(
        self, aiozc: AsyncZeroconf, type_: str, name: str, timeout: float
    ) -> AsyncServiceInfo | None:
        info = AsyncServiceInfo(type_, name)
        if not await info.async_request(aiozc.zeroconf, int(timeout * 1000)):
            logger.debug(f"Could not resolve {name} within {timeout:.2f}s")
            return None
        return info

    async def query(
        self,
        service_name: str,
        interface: NetworkInterface | None = None,
    ) -> AsyncIterator[ServiceEntry]:
        type_ = qualify_service_name(service_name)
        loop = asyncio.get_running_loop()
        found: asyncio.Queue[str] = asyncio.Queue()

        def on_state_change(
            zeroconf: Zeroconf,
            service_type: str,
            name: str,
            state_change: ServiceStateChange,
        ) -> None:
            if state_change is ServiceStateChange.Added:
                loop.call_soon_threadsafe(found.put_nowait, name)

        aiozc = AsyncZeroconf(**self._zeroconf_kwargs(interface))
        browser: AsyncServiceBrowser | None = None
        try:
            browser = AsyncServiceBrowser(aiozc.zeroconf, [type_], handlers=[on_state_change])
            deadline = loop.time() + self.timeout_seconds
            seen: set[str] = set()

            while (remaining := deadline - loop.time()) > 0:
                try:
                    name = await asyncio.wait_for(found.get(), remaining)
                except asyncio.TimeoutError:
                    break
                if name in seen:
                    continue
                seen.add(name)

                timeout = max(deadline - loop.time(), MIN_RESOLVE_SECONDS)
                info = await self._resolve(aiozc, type_, name, timeout)
                if info is not None:
                    yield entry_from_info(type_, info)
        finally:
            if browser is not None:
                await browser.async_cancel()
            await aiozc.async_close()
