"""Tests for the command line entry point."""

import argparse
import asyncio
import json
from unittest.mock import patch

import pytest

from promdns.__main__ import apply_cli_overrides, cmd_interfaces, cmd_run, main, run_discovery
from promdns.config import Config
from promdns.discovery.models import HTTP_SERVICE
from promdns.interfaces import InterfaceNotFoundError, NetworkInterface


def run_args(**overrides) -> argparse.Namespace:
    values = {
        "config": None,
        "interval": None,
        "out": None,
        "ipv4_only": False,
        "interface": None,
    }
    values.update(overrides)
    return argparse.Namespace(**values)


class TestApplyCliOverrides:
    """Tests for apply_cli_overrides()."""

    def test_no_flags_keep_config(self):
        assert apply_cli_overrides(Config(), run_args()) == Config()

    def test_flags_override(self):
        config = apply_cli_overrides(
            Config(),
            run_args(interval=30.0, out="targets.json", ipv4_only=True, interface=["eth0,wlan0", "eth1"]),
        )

        assert config.discovery.interval_seconds == 30.0
        assert config.output.path == "targets.json"
        assert config.discovery.ipv4_only is True
        assert config.discovery.interfaces == ["eth0", "wlan0", "eth1"]

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            apply_cli_overrides(Config(), run_args(interval=0.0))


class TestCmdInterfaces:
    """Tests for the interfaces command."""

    def test_prints_names_and_flags(self, capsys):
        interfaces = [
            NetworkInterface("eth0", flags=["up", "broadcast", "multicast"]),
            NetworkInterface("lo", flags=["up", "loopback"]),
        ]
        with patch("promdns.__main__.list_interfaces", return_value=interfaces):
            assert cmd_interfaces(argparse.Namespace()) == 0

        assert capsys.readouterr().out.splitlines() == [
            "name flags",
            "eth0 up|broadcast|multicast",
            "lo up|loopback",
        ]


class TestCmdRun:
    """Tests for the run command."""

    @pytest.mark.asyncio
    async def test_unknown_interface_is_fatal(self):
        """Test a missing interface exits with status 1 before discovery."""
        with patch(
            "promdns.__main__.resolve_interfaces",
            side_effect=InterfaceNotFoundError("wlan9"),
        ), patch("promdns.__main__.ZeroconfTransport") as transport:
            assert await cmd_run(run_args(interface=["wlan9"])) == 1

        transport.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_configuration_is_fatal(self):
        assert await cmd_run(run_args(interval=-1.0)) == 1

    @pytest.mark.asyncio
    async def test_unwritable_output_is_fatal(self, tmp_path, fake_transport):
        """Test an output error stops the process with status 1."""
        out = tmp_path / "missing" / "targets.json"
        with patch("promdns.__main__.ZeroconfTransport", return_value=fake_transport()):
            assert await cmd_run(run_args(out=str(out), interval=0.05)) == 1


class TestRunDiscovery:
    """End-to-end tests with a scripted transport."""

    @pytest.mark.asyncio
    async def test_writes_targets_until_stopped(self, tmp_path, fake_transport, entry_factory):
        """Test targets are written to the file and the loop stops cleanly."""
        out = tmp_path / "targets.json"
        config = Config()
        config.discovery.interval_seconds = 0.02
        config.output.path = str(out)
        transport = fake_transport(
            {HTTP_SERVICE: [entry_factory(info_fields=("path=/metrics",))]}
        )
        stop = asyncio.Event()

        asyncio.get_running_loop().call_later(0.2, stop.set)
        with patch("promdns.__main__.ZeroconfTransport", return_value=transport), patch(
            "promdns.output.TargetWriter.write", autospec=True,
            side_effect=lambda self, data: out.write_text(data),
        ) as write:
            await asyncio.wait_for(run_discovery(config, stop), timeout=2)

        assert json.loads(out.read_text()) == [
            {
                "targets": ["10.0.0.5:9100"],
                "labels": {
                    "__metrics_path__": "/metrics",
                    "__scheme__": "http",
                    "instance": "node1.local",
                },
            }
        ]
        # Several cycles ran, but the unchanged snapshot was written once
        assert len(transport.calls) > 2
        assert write.call_count == 1


class TestMain:
    """Tests for command dispatch in main()."""

    def test_async_command_runs_in_event_loop(self):
        """Test coroutine commands are run with asyncio."""
        seen = []

        async def fake_run(args):
            seen.append(asyncio.get_running_loop())
            return 0

        with patch("promdns.__main__.cmd_run", fake_run), patch(
            "sys.argv", ["promdns", "run", "--interval", "5"]
        ):
            assert main() == 0

        assert len(seen) == 1

    def test_sync_command_called_directly(self):
        """Test plain commands are called without an event loop."""
        with patch("promdns.__main__.cmd_interfaces", return_value=0) as interfaces, patch(
            "sys.argv", ["promdns", "interfaces"]
        ):
            assert main() == 0

        interfaces.assert_called_once()

    def test_no_command_prints_help(self, capsys):
        with patch("sys.argv", ["promdns"]):
            assert main() == 1

        assert "usage: promdns" in capsys.readouterr().out
