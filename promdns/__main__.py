"""CLI entry point for promdns."""

import argparse
import asyncio
import inspect
import json
import logging
import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .config import Config, load_config, parse_interfaces
from .discovery import QueryFanout, RefreshScheduler, SnapshotAggregator, ZeroconfTransport
from .interfaces import InterfaceNotFoundError, list_interfaces, resolve_interfaces
from .output import ChangeFilter, RefreshState, TargetWriter

logger = logging.getLogger("promdns")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        # Safe JSON serialization
        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging on stderr.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )

    # zeroconf is chatty about every malformed packet on the network
    if level > logging.DEBUG:
        logging.getLogger("zeroconf").setLevel(logging.WARNING)


def apply_cli_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply `run` flags on top of file and environment configuration."""
    if args.interval is not None:
        config.discovery.interval_seconds = args.interval
    if args.out is not None:
        config.output.path = args.out
    if args.ipv4_only:
        config.discovery.ipv4_only = True
    if args.interface:
        config.discovery.interfaces = [
            name for value in args.interface for name in parse_interfaces(value)
        ]

    config.validate()
    return config


async def run_discovery(config: Config, stop_event: asyncio.Event) -> None:
    """Run discovery until the stop event is set.

    Raises:
        InterfaceNotFoundError: A configured interface does not exist.
        OSError: The output destination cannot be written.
    """
    disc = config.discovery
    interfaces = resolve_interfaces(disc.interfaces)

    fanout = QueryFanout(
        transport=ZeroconfTransport(timeout_seconds=disc.query_timeout_seconds),
        service_names=disc.service_names,
        interfaces=interfaces,
        ipv4_only=disc.ipv4_only,
        secure_service_name=disc.secure_service_name,
    )
    scheduler = RefreshScheduler(
        SnapshotAggregator(fanout),
        interval_seconds=disc.interval_seconds,
        stop_event=stop_event,
    )
    state = RefreshState(interval_seconds=disc.interval_seconds, interfaces=interfaces)
    change_filter = ChangeFilter(state, TargetWriter(config.output.path))

    logger.info(
        f"Discovering {', '.join(disc.service_names)} on "
        f"{', '.join(i.name for i in interfaces) or 'all interfaces'}"
    )

    async for snapshot in scheduler.snapshots():
        change_filter.process(snapshot)


async def cmd_run(args: argparse.Namespace) -> int:
    """Run discovery and write targets until interrupted."""
    try:
        config = apply_cli_overrides(load_config(args.config), args)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await run_discovery(config, stop_event)
    except InterfaceNotFoundError as e:
        logger.error(str(e))
        return 1
    except OSError as e:
        logger.error(f"Cannot write targets to {config.output.path}: {e}")
        return 1
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    return 0


def cmd_interfaces(args: argparse.Namespace) -> int:
    """List network interfaces and their flags."""
    print("name flags")
    for iface in list_interfaces():
        print(f"{iface.name} {iface.flags_text}")
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="promdns",
        description="Prometheus service discovery over mDNS/DNS-SD",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Discover services and write targets")
    run_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between queries (default: 10)",
    )
    run_parser.add_argument(
        "--out",
        type=str,
        default=None,
        help="File to write targets to, '-' for stdout (default: -)",
    )
    run_parser.add_argument(
        "-4", "--ipv4-only",
        action="store_true",
        help="Only keep services with an IPv4 address",
    )
    run_parser.add_argument(
        "-i", "--interface",
        action="append",
        default=None,
        help="Interface(s) to query on, comma-separated or repeated",
    )
    run_parser.set_defaults(func=cmd_run)

    # Interfaces command
    interfaces_parser = subparsers.add_parser("interfaces", help="List network interfaces and exit")
    interfaces_parser.set_defaults(func=cmd_interfaces)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json)

    if not args.command:
        parser.print_help()
        return 1

    # Check if function is async
    func = args.func
    is_async = inspect.iscoroutinefunction(func)

    if is_async:
        return asyncio.run(func(args))
    else:
        return func(args)


if __name__ == "__main__":
    sys.exit(main())
