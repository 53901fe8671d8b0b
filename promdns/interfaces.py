"""Network interface listing and lookup by name."""

import logging
import socket
from dataclasses import dataclass, field

import psutil

logger = logging.getLogger(__name__)


class InterfaceNotFoundError(ValueError):
    """Raised when a configured interface name does not exist."""

    def __init__(self, name: str):
        super().__init__(f"interface not found: {name}")
        self.name = name


@dataclass
class NetworkInterface:
    """A local network interface."""

    name: str
    flags: list[str] = field(default_factory=list)
    addresses: list[str] = field(default_factory=list)  # IPv4/IPv6 unicast addresses

    @property
    def flags_text(self) -> str:
        return "|".join(self.flags)


def _interface_flags(stats) -> list[str]:
    if stats is None:
        return []
    flags = [flag for flag in stats.flags.split(",") if flag]
    if stats.isup and "up" not in flags:
        flags.insert(0, "up")
    return flags


def list_interfaces() -> list[NetworkInterface]:
    """List local network interfaces sorted by name."""
    addrs = psutil.net_if_addrs()
    stats = psutil.net_if_stats()

    interfaces = []
    for name in sorted(set(addrs) | set(stats)):
        addresses = [
            # Drop the zone suffix psutil appends to link-local IPv6 addresses
            addr.address.split("%", 1)[0]
            for addr in addrs.get(name, [])
            if addr.family in (socket.AF_INET, socket.AF_INET6)
        ]
        interfaces.append(
            NetworkInterface(
                name=name,
                flags=_interface_flags(stats.get(name)),
                addresses=addresses,
            )
        )
    return interfaces


def resolve_interfaces(names: list[str]) -> list[NetworkInterface]:
    """Look up interfaces by name, keeping the requested order.

    Raises:
        InterfaceNotFoundError: If any name does not match a local interface.
    """
    if not names:
        return []

    available = {iface.name: iface for iface in list_interfaces()}
    resolved = []
    for name in names:
        iface = available.get(name)
        if iface is None:
            raise InterfaceNotFoundError(name)
        resolved.append(iface)

    logger.debug(f"Resolved interfaces: {', '.join(i.name for i in resolved)}")
    return resolved
