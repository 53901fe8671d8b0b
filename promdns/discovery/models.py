"""Data types shared by the discovery engine."""

from dataclasses import dataclass, field
from enum import Enum

# Reserved Prometheus label names (see prometheus/common model/labels.go).
INSTANCE_LABEL = "instance"
SCHEME_LABEL = "__scheme__"
METRICS_PATH_LABEL = "__metrics_path__"
META_LABEL_PREFIX = "__meta_"

# TXT key that maps onto the metrics path instead of a meta label.
PATH_FIELD = "path"

HTTP_SERVICE = "_prometheus-http._tcp"
HTTPS_SERVICE = "_prometheus-https._tcp"


@dataclass(frozen=True)
class ServiceEntry:
    """A single raw response returned by the mDNS transport."""

    service_name: str  # Service the entry was matched under, e.g. "_prometheus-http._tcp.local."
    host: str  # Advertised host name, usually with a trailing dot
    port: int
    addr_v4: str | None = None
    addr_v6: str | None = None
    info_fields: tuple[str, ...] = ()  # Raw "key=value" TXT strings in wire order


@dataclass
class TargetGroup:
    """One discovered service instance in Prometheus file_sd form."""

    targets: list[str] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def sort_key(self) -> tuple[bool, str]:
        """Order by first target; groups without targets sort last."""
        if not self.targets:
            return (True, "")
        return (False, self.targets[0])

    def to_dict(self) -> dict:
        """Convert to the file_sd JSON shape, omitting empty fields."""
        data: dict = {}
        if self.targets:
            data["targets"] = list(self.targets)
        if self.labels:
            data["labels"] = {key: self.labels[key] for key in sorted(self.labels)}
        return data


class QueryStatus(Enum):
    """How a single query task finished."""

    COMPLETED = "completed"
    FAILED = "failed"  # Transport error, treated as an empty result
    CANCELLED = "cancelled"


@dataclass
class QueryOutcome:
    """Result of one query task within a refresh cycle."""

    service_name: str
    interface: str | None
    status: QueryStatus
    forwarded: int = 0
    dropped: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.status is QueryStatus.FAILED


@dataclass
class Snapshot:
    """Everything produced by one refresh cycle.

    ``groups`` keeps arrival order; ordering is applied at serialization time.
    ``outcomes`` is diagnostic only and never serialized.
    """

    groups: list[TargetGroup] = field(default_factory=list)
    outcomes: list[QueryOutcome] = field(default_factory=list)

    def sorted_groups(self) -> list[TargetGroup]:
        """Return the groups in their total output order."""
        return sorted(self.groups, key=lambda group: group.sort_key)

    @property
    def failed_queries(self) -> list[QueryOutcome]:
        return [outcome for outcome in self.outcomes if outcome.failed]
