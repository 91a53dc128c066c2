from __future__ import annotations

import io
import subprocess
import threading
from types import SimpleNamespace
from typing import List

import pytest

from forgesafe.core.fork_manager import ForkConfig, ForkManager, get_forge_rpc_url, should_start_fork
from forgesafe.errors import ErrorCode, ForkStartupError, ForkStartupTimeoutError


class BlockingStream:
    """A stdout that never produces the startup marker until released."""

    def __init__(self) -> None:
        self.released = threading.Event()

    def __iter__(self):
        self.released.wait(5)
        return iter(())


class FakeProcess:
    def __init__(self, stdout, returncode=None) -> None:
        self.stdout = stdout
        self.stderr = io.StringIO("")
        self.returncode = returncode
        self.signals: List[str] = []

    def poll(self):
        return self.returncode

    def terminate(self) -> None:
        self.signals.append("SIGTERM")
        self.returncode = -15
        if isinstance(self.stdout, BlockingStream):
            self.stdout.released.set()

    def kill(self) -> None:
        self.signals.append("SIGKILL")
        self.returncode = -9

    def wait(self, timeout=None):
        return self.returncode


def _popen_returning(process: FakeProcess, calls: list):
    def _popen(args, **kwargs):
        calls.append(args)
        return process

    return _popen


@pytest.mark.parametrize(
    "url, skip, expected",
    [
        ("https://eth-sepolia.g.alchemy.com/v2/key", False, True),
        ("http://localhost:8545", False, False),
        ("http://127.0.0.1:8545", False, False),
        ("https://arb1.example.org", True, False),
    ],
)
def test_should_start_fork(url, skip, expected) -> None:
    assert should_start_fork(url, skip) is expected


def test_forge_rpc_url_rewrites_wildcard_host() -> None:
    config = ForkConfig(fork_url="https://rpc.example.org")
    assert get_forge_rpc_url("https://rpc.example.org", True, config) == "http://localhost:8545"
    custom = ForkConfig(fork_url="https://rpc.example.org", host="127.0.0.1", port=9545)
    assert get_forge_rpc_url("https://rpc.example.org", True, custom) == "http://127.0.0.1:9545"
    assert get_forge_rpc_url("https://rpc.example.org", False, config) == "https://rpc.example.org"


def test_fork_command_includes_seed_options() -> None:
    config = ForkConfig(fork_url="https://rpc.example.org", accounts=3, balance=50, unlock=("0xabc",))
    assert config.command() == [
        "anvil",
        "--fork-url",
        "https://rpc.example.org",
        "--host",
        "0.0.0.0",
        "--port",
        "8545",
        "--accounts",
        "3",
        "--balance",
        "50",
        "--unlock",
        "0xabc",
    ]


def test_start_fork_waits_for_marker(logbook) -> None:
    process = FakeProcess(io.StringIO("Available Accounts\n...\nListening on 0.0.0.0:8545\n"))
    calls: list = []
    manager = ForkManager(logbook=logbook, popen=_popen_returning(process, calls))

    manager.start_fork(ForkConfig(fork_url="https://rpc.example.org/v2/secret"))

    assert manager.is_running()
    assert calls[0][:3] == ["anvil", "--fork-url", "https://rpc.example.org/v2/secret"]
    manager.stop()
    assert process.signals == ["SIGTERM"]
    assert not manager.is_running()
    assert manager.process is None


def test_start_fork_times_out_and_kills_process(logbook) -> None:
    process = FakeProcess(BlockingStream())
    manager = ForkManager(logbook=logbook, popen=_popen_returning(process, []), poll_interval=0.01)

    with pytest.raises(ForkStartupTimeoutError) as excinfo:
        manager.start_fork(ForkConfig(fork_url="https://rpc.example.org", timeout=0.05))

    assert excinfo.value.code is ErrorCode.FORK_STARTUP_TIMEOUT
    assert process.signals == ["SIGTERM"]
    assert not manager.is_running()


def test_exit_before_startup_is_fatal(logbook) -> None:
    process = FakeProcess(io.StringIO("error: invalid fork url\n"), returncode=1)
    manager = ForkManager(logbook=logbook, popen=_popen_returning(process, []))

    with pytest.raises(ForkStartupError) as excinfo:
        manager.start_fork(ForkConfig(fork_url="https://rpc.example.org"))

    assert excinfo.value.context["exit_code"] == 1
    assert not manager.is_running()


def test_spawn_error_is_fatal(logbook) -> None:
    def _missing(*args, **kwargs):
        raise FileNotFoundError("anvil")

    manager = ForkManager(logbook=logbook, popen=_missing)
    with pytest.raises(ForkStartupError) as excinfo:
        manager.start_fork(ForkConfig(fork_url="https://rpc.example.org/v2/secret"))
    assert "secret" not in str(excinfo.value.context)


def test_stop_is_noop_when_not_running(logbook) -> None:
    manager = ForkManager(logbook=logbook)
    manager.stop()
    manager.stop_on_error()
    assert not manager.is_running()


def test_check_availability(logbook) -> None:
    ok = ForkManager(logbook=logbook, run=lambda *a, **k: SimpleNamespace(returncode=0))
    assert ok.check_availability() is True

    def _missing(*args, **kwargs):
        raise FileNotFoundError("anvil")

    assert ForkManager(logbook=logbook, run=_missing).check_availability() is False

    def _hangs(*args, **kwargs):
        raise subprocess.TimeoutExpired(args[0], 5)

    assert ForkManager(logbook=logbook, run=_hangs).check_availability() is False


def test_fund_accounts_skips_failures(logbook) -> None:
    commands: list = []

    def _run(args, **kwargs):
        commands.append(args)
        return SimpleNamespace(returncode=0 if args[3] == "0x1" else 1, stderr="boom")

    manager = ForkManager(logbook=logbook, run=_run)
    funded = manager.fund_accounts(["0x1", "0x2"], balance_eth=1, rpc_url="http://localhost:8545")

    assert funded == ["0x1"]
    assert commands[0] == ["cast", "rpc", "anvil_setBalance", "0x1", hex(10**18), "--rpc-url", "http://localhost:8545"]
