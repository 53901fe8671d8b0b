"""Shared fixtures for promdns tests."""

import asyncio

import pytest

from promdns.discovery.models import ServiceEntry
from promdns.discovery.transport import QueryTransport


class FakeTransport(QueryTransport):
    """Scripted transport: yields canned entries per service name."""

    def __init__(
        self,
        responses: dict[str, list[ServiceEntry]] | None = None,
        failures: dict[str, Exception] | None = None,
        hang: set[str] | None = None,
        delay: float = 0.0,
    ):
        self.responses = responses or {}
        self.failures = failures or {}
        self.hang = hang or set()
        self.delay = delay
        self.calls: list[tuple[str, str | None]] = []
        self.closed = 0

    async def query(self, service_name, interface=None):
        self.calls.append((service_name, interface.name if interface else None))
        try:
            for entry in self.responses.get(service_name, []):
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield entry
            if service_name in self.failures:
                raise self.failures[service_name]
            if service_name in self.hang:
                await asyncio.Event().wait()
        finally:
            self.closed += 1


def make_entry(
    host: str = "node1.local.",
    port: int = 9100,
    addr_v4: str | None = "10.0.0.5",
    addr_v6: str | None = None,
    service_name: str = "_prometheus-http._tcp.local.",
    info_fields: tuple[str, ...] = (),
) -> ServiceEntry:
    return ServiceEntry(
        service_name=service_name,
        host=host,
        port=port,
        addr_v4=addr_v4,
        addr_v6=addr_v6,
        info_fields=info_fields,
    )


@pytest.fixture
def entry_factory():
    """Build ServiceEntry objects with sensible defaults."""
    return make_entry


@pytest.fixture
def fake_transport():
    """Build a FakeTransport from keyword arguments."""
    return FakeTransport
