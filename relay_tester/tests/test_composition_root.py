"""Integration tests for the composition root.

These tests verify that the bootstrap process correctly loads
configuration, wires the relay adapter into the runner, and maps the
outcome of a run onto the process exit code.
"""

import logging
import sys
from unittest.mock import AsyncMock, patch

import pytest

from relay_tester import main as main_module
from relay_tester.core.models import ConfigurationError, Nip, TransportError
from relay_tester.core.report import Passed
from relay_tester.main import bootstrap, configure_logging, main
from relay_tester.tests.fakes import FakeRelayPort


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("RELAY_TESTER_RELAY_URL", raising=False)
    monkeypatch.delenv("RELAY_TESTER_NIPS", raising=False)


@pytest.fixture(autouse=True)
def restore_root_logger():
    """bootstrap() reconfigures the root logger; undo it after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class FakeRelayFactory:
    """Replaces WebsocketRelayAdapter, handing out one FakeRelayPort."""

    def __init__(self):
        self.relay = FakeRelayPort()
        self.calls: list[dict] = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        return self.relay


class TestBootstrap:
    """Test wiring of a full run."""

    @pytest.mark.asyncio
    async def test_runs_requested_nips_and_prints_reports(self, capsys):
        factory = FakeRelayFactory()

        with patch.object(main_module, "WebsocketRelayAdapter", factory):
            reports = await bootstrap(["-r", "ws://localhost:7777", "-n", "nip02,nip01"])

        assert reports == [Passed(Nip.NIP02), Passed(Nip.NIP01)]
        assert factory.calls[0]["url"] == "ws://localhost:7777"
        assert factory.relay.connected is False
        assert "1. " not in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_missing_relay_url_fails_before_connecting(self):
        factory = FakeRelayFactory()

        with patch.object(main_module, "WebsocketRelayAdapter", factory):
            with pytest.raises(ConfigurationError, match="Relay URL must be specified!"):
                await bootstrap([])

        assert factory.calls == []

    @pytest.mark.asyncio
    async def test_disconnects_when_run_raises(self):
        factory = FakeRelayFactory()
        factory.relay.disconnect = AsyncMock()

        with patch.object(main_module, "WebsocketRelayAdapter", factory), patch.object(
            main_module.ConformanceRunner, "run", AsyncMock(side_effect=RuntimeError("boom"))
        ):
            with pytest.raises(RuntimeError):
                await bootstrap(["-r", "ws://localhost:7777"])

        factory.relay.disconnect.assert_awaited_once()


class TestExitCodes:
    """Test mapping of run outcomes to exit codes."""

    def run_main(self, bootstrap_mock) -> int:
        with patch.object(main_module, "bootstrap", bootstrap_mock):
            with pytest.raises(SystemExit) as exc_info:
                main()
        return exc_info.value.code

    def test_all_passed_exits_zero(self):
        assert self.run_main(AsyncMock(return_value=[Passed(Nip.NIP01)])) == 0

    def test_failed_report_exits_one(self, monkeypatch):
        factory = FakeRelayFactory()
        factory.relay.honor_deletions = False
        monkeypatch.setattr(main_module, "WebsocketRelayAdapter", factory)
        monkeypatch.setattr(sys, "argv", ["nostr-relay-tester", "-r", "ws://x.test", "-n", "nip09"])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1

    def test_configuration_error_exits_one(self):
        assert self.run_main(AsyncMock(side_effect=ConfigurationError("bad"))) == 1

    def test_connection_error_exits_one(self):
        assert self.run_main(AsyncMock(side_effect=TransportError("refused"))) == 1

    def test_interrupt_exits_130(self):
        assert self.run_main(AsyncMock(side_effect=KeyboardInterrupt())) == 130


def test_configure_logging_writes_to_stderr(capsys):
    configure_logging("INFO", "text")

    logging.getLogger("relay_tester.test").info("hello from the tester")

    captured = capsys.readouterr()
    assert "hello from the tester" in captured.err
    assert captured.out == ""
