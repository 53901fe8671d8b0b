"""Configuration loading for promdns."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .discovery.models import HTTP_SERVICE, HTTPS_SERVICE

TRUE_VALUES = ("true", "1", "yes")


@dataclass
class DiscoveryConfig:
    """Configuration for mDNS service discovery."""

    interval_seconds: float = 10.0
    query_timeout_seconds: float = 1.0  # Browse window per query
    service_names: list[str] = field(
        default_factory=lambda: [HTTP_SERVICE, HTTPS_SERVICE]
    )
    secure_service_name: str = HTTPS_SERVICE  # Targets found under this use https
    ipv4_only: bool = False
    interfaces: list[str] = field(default_factory=list)  # Empty = unscoped queries


@dataclass
class OutputConfig:
    path: str = "-"  # "-" writes to standard output


@dataclass
class Config:
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def validate(self) -> None:
        """Raise ValueError for settings that cannot work."""
        if self.discovery.interval_seconds <= 0:
            raise ValueError("discovery.interval_seconds must be positive")
        if self.discovery.query_timeout_seconds <= 0:
            raise ValueError("discovery.query_timeout_seconds must be positive")
        if not self.discovery.service_names:
            raise ValueError("discovery.service_names must not be empty")
        if not self.output.path:
            raise ValueError("output.path must not be empty")


def parse_bool(value: Any) -> bool:
    """Interpret YAML or environment flags; strings use TRUE_VALUES."""
    if isinstance(value, str):
        return value.strip().lower() in TRUE_VALUES
    return bool(value)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with PROMDNS_ prefix."""
    return os.environ.get(f"PROMDNS_{key}", default)


def parse_interfaces(value: str | list[str] | None) -> list[str]:
    """Parse interface names from a list or a comma-separated string."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [name.strip() for name in value if name and name.strip()]


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if interval := _get_env("INTERVAL"):
        config.discovery.interval_seconds = float(interval)
    if timeout := _get_env("QUERY_TIMEOUT"):
        config.discovery.query_timeout_seconds = float(timeout)
    if ipv4_only := _get_env("IPV4_ONLY"):
        config.discovery.ipv4_only = parse_bool(ipv4_only)
    if interfaces := _get_env("INTERFACES"):
        config.discovery.interfaces = parse_interfaces(interfaces)

    if output := _get_env("OUTPUT"):
        config.output.path = output

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded and validated Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse discovery config
            if "discovery" in data:
                disc_data = data["discovery"] or {}
                config.discovery = DiscoveryConfig(
                    interval_seconds=float(
                        disc_data.get("interval_seconds", config.discovery.interval_seconds)
                    ),
                    query_timeout_seconds=float(
                        disc_data.get(
                            "query_timeout_seconds", config.discovery.query_timeout_seconds
                        )
                    ),
                    service_names=list(
                        disc_data.get("service_names", config.discovery.service_names)
                    ),
                    secure_service_name=disc_data.get(
                        "secure_service_name", config.discovery.secure_service_name
                    ),
                    ipv4_only=parse_bool(disc_data.get("ipv4_only", config.discovery.ipv4_only)),
                    interfaces=parse_interfaces(disc_data.get("interfaces")),
                )

            # Parse output config
            if "output" in data:
                out_data = data["output"] or {}
                config.output = OutputConfig(
                    path=str(out_data.get("path", config.output.path)),
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    config.validate()
    return config
