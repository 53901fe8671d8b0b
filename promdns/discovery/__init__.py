"""mDNS/DNS-SD discovery engine producing Prometheus target groups."""

from .aggregator import SnapshotAggregator
from .fanout import QueryFanout
from .mapper import map_entry
from .models import QueryOutcome, QueryStatus, ServiceEntry, Snapshot, TargetGroup
from .scheduler import RefreshScheduler, SchedulerState
from .transport import QueryTransport, ZeroconfTransport

__all__ = [
    "QueryFanout",
    "QueryOutcome",
    "QueryStatus",
    "QueryTransport",
    "RefreshScheduler",
    "SchedulerState",
    "ServiceEntry",
    "Snapshot",
    "SnapshotAggregator",
    "TargetGroup",
    "ZeroconfTransport",
    "map_entry",
]
