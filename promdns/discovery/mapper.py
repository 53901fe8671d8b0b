"""Maps raw mDNS responses onto Prometheus target groups."""

from .models import (
    HTTPS_SERVICE,
    INSTANCE_LABEL,
    META_LABEL_PREFIX,
    METRICS_PATH_LABEL,
    PATH_FIELD,
    SCHEME_LABEL,
    ServiceEntry,
    TargetGroup,
)


def select_address(entry: ServiceEntry) -> str:
    """Pick the scrape address: IPv4, then bracketed IPv6, then the host name."""
    if entry.addr_v4:
        return f"{entry.addr_v4}:{entry.port}"
    if entry.addr_v6:
        return f"[{entry.addr_v6}]:{entry.port}"
    return f"{entry.host}:{entry.port}"


def parse_info_field(info_field: str) -> tuple[str, str]:
    """Split a TXT string on the first '='; a bare key gets an empty value."""
    key, _, value = info_field.partition("=")
    return key, value


def info_field_label(key: str) -> str:
    if key == PATH_FIELD:
        return METRICS_PATH_LABEL
    return META_LABEL_PREFIX + key


def map_entry(
    entry: ServiceEntry,
    ipv4_only: bool = False,
    secure_service_name: str = HTTPS_SERVICE,
) -> TargetGroup | None:
    """Build a target group from one service entry.

    Args:
        entry: Raw response from the transport.
        ipv4_only: Drop entries that have no resolved IPv4 address.
        secure_service_name: Service name whose targets are scraped over https.

    Returns:
        The target group, or None if the entry is dropped.
    """
    if ipv4_only and not entry.addr_v4:
        return None

    labels = {
        INSTANCE_LABEL: entry.host.rstrip("."),
        SCHEME_LABEL: "https" if secure_service_name in entry.service_name else "http",
    }

    for info_field in entry.info_fields:
        key, value = parse_info_field(info_field)
        labels[info_field_label(key)] = value

    return TargetGroup(targets=[select_address(entry)], labels=labels)
