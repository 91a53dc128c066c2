"""Local Anvil fork lifecycle management."""

from __future__ import annotations

import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from ..errors import ErrorCode, ForkStartupError, ForkStartupTimeoutError
from ..utils.logbook import Logbook
from ..utils.validation import redact_url

STARTUP_MARKER = "Listening on"
LOOPBACK_HOSTS = ("localhost", "127.0.0.1")
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8545
AVAILABILITY_TIMEOUT = 5.0
FUNDING_TIMEOUT = 10.0
STOP_TIMEOUT = 5.0
WEI_PER_ETHER = 10**18


@dataclass(frozen=True)
class ForkConfig:
    fork_url: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    accounts: int = 10
    balance: int = 10000
    timeout: float = 30.0
    unlock: Tuple[str, ...] = ()

    def command(self, binary: str = "anvil") -> List[str]:
        args = [
            binary,
            "--fork-url",
            self.fork_url,
            "--host",
            self.host,
            "--port",
            str(self.port),
            "--accounts",
            str(self.accounts),
            "--balance",
            str(self.balance),
        ]
        for address in self.unlock:
            args.extend(["--unlock", address])
        return args

    @property
    def local_url(self) -> str:
        host = "localhost" if self.host == DEFAULT_HOST else self.host
        return f"http://{host}:{self.port}"


def is_loopback(rpc_url: str) -> bool:
    return any(host in rpc_url for host in LOOPBACK_HOSTS)


def should_start_fork(rpc_url: str, skip: bool = False) -> bool:
    """Never fork a local chain, and never fork when told not to."""

    if skip:
        return False
    return not is_loopback(rpc_url)


def get_forge_rpc_url(rpc_url: str, running: bool, config: Optional[ForkConfig] = None) -> str:
    if running and config is not None:
        return config.local_url
    return rpc_url


class ForkManager:
    """Own a single ``anvil --fork-url`` child process."""

    def __init__(
        self,
        *,
        logbook: Optional[Logbook] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        anvil_bin: str = "anvil",
        cast_bin: str = "cast",
        poll_interval: float = 0.1,
    ) -> None:
        self.logbook = logbook or Logbook()
        self._popen = popen
        self._run = run
        self.anvil_bin = anvil_bin
        self.cast_bin = cast_bin
        self.poll_interval = poll_interval
        self._process: Optional[subprocess.Popen] = None
        self._config: Optional[ForkConfig] = None
        self._started = False

    # -- inspection -------------------------------------------------------
    @property
    def config(self) -> Optional[ForkConfig]:
        return self._config

    @property
    def process(self) -> Optional[subprocess.Popen]:
        return self._process

    def is_running(self) -> bool:
        return self._started and self._process is not None

    def check_availability(self) -> bool:
        try:
            result = self._run(
                [self.anvil_bin, "--version"],
                capture_output=True,
                text=True,
                timeout=AVAILABILITY_TIMEOUT,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            self.logbook.debug("anvil availability check failed", error=str(exc))
            return False
        return result.returncode == 0

    # -- lifecycle --------------------------------------------------------
    def _pump_stdout(self, stream: Iterable[str], started: threading.Event, finished: threading.Event) -> None:
        try:
            for line in stream:
                text = line.rstrip()
                if text:
                    self.logbook.debug("anvil", output=text)
                if STARTUP_MARKER in line:
                    started.set()
        finally:
            finished.set()

    def _pump_stderr(self, stream: Iterable[str]) -> None:
        for line in stream:
            text = line.rstrip()
            if text:
                self.logbook.warning("anvil stderr", output=text)

    def _spawn_reader(self, target: Callable[..., None], *args: object) -> None:
        thread = threading.Thread(target=target, args=args, daemon=True)
        thread.start()

    def start_fork(self, config: ForkConfig) -> subprocess.Popen:
        """Launch the fork and block until it reports it is listening."""

        if self._process is not None:
            raise ForkStartupError(
                "An Anvil fork is already running",
                ErrorCode.ANVIL_START_FAILED,
                {"host": config.host, "port": config.port},
            )
        context = {"fork_url": redact_url(config.fork_url), "host": config.host, "port": config.port}
        self.logbook.info("starting anvil fork", **context)
        try:
            process = self._popen(
                config.command(self.anvil_bin),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            self.logbook.error("failed to spawn anvil", error=str(exc), **context)
            raise ForkStartupError(f"Failed to start Anvil: {exc}", context=context) from exc

        started = threading.Event()
        finished = threading.Event()
        self._spawn_reader(self._pump_stdout, process.stdout, started, finished)
        if process.stderr is not None:
            self._spawn_reader(self._pump_stderr, process.stderr)

        deadline = time.monotonic() + config.timeout
        while not started.is_set():
            if finished.is_set() and not started.is_set():
                code = process.poll()
                self.logbook.error("anvil exited before startup", exit_code=code, **context)
                raise ForkStartupError(
                    f"Anvil process exited with code {code} before startup",
                    context={**context, "exit_code": code},
                )
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._terminate(process)
                self.logbook.error("anvil startup timed out", timeout=config.timeout, **context)
                raise ForkStartupTimeoutError(
                    f"Anvil startup timeout after {config.timeout:g} seconds",
                    context={**context, "timeout": config.timeout},
                )
            started.wait(min(remaining, self.poll_interval))

        self._process = process
        self._config = config
        self._started = True
        self.logbook.audit("fork.start", local_url=config.local_url, **context)
        return process

    def _terminate(self, process: subprocess.Popen) -> None:
        if process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=STOP_TIMEOUT)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def _cleanup(self) -> None:
        self._process = None
        self._config = None
        self._started = False

    def stop(self) -> None:
        if self._process is None or not self._started:
            return
        self.logbook.info("stopping anvil fork")
        self._terminate(self._process)
        self.logbook.audit("fork.stop")
        self._cleanup()

    def stop_on_error(self) -> None:
        if self._process is None:
            return
        self.logbook.warning("stopping anvil fork due to error")
        self._terminate(self._process)
        self.logbook.audit("fork.stop", ok=False)
        self._cleanup()

    # -- helpers ----------------------------------------------------------
    def fund_accounts(self, addresses: Iterable[str], balance_eth: int = 10000, rpc_url: Optional[str] = None) -> List[str]:
        """Top up ``addresses`` on the fork; failures are only logged."""

        target = rpc_url or (self._config.local_url if self._config else f"http://localhost:{DEFAULT_PORT}")
        amount = hex(int(balance_eth) * WEI_PER_ETHER)
        funded: List[str] = []
        for address in addresses:
            try:
                result = self._run(
                    [self.cast_bin, "rpc", "anvil_setBalance", address, amount, "--rpc-url", target],
                    capture_output=True,
                    text=True,
                    timeout=FUNDING_TIMEOUT,
                    check=False,
                )
            except (OSError, subprocess.TimeoutExpired) as exc:
                self.logbook.warning("failed to fund account", address=address, error=str(exc))
                continue
            if result.returncode != 0:
                self.logbook.warning("failed to fund account", address=address, stderr=(result.stderr or "").strip())
                continue
            funded.append(address)
        self.logbook.info("funded fork accounts", funded=len(funded), balance_eth=balance_eth)
        return funded


__all__ = [
    "ForkConfig",
    "ForkManager",
    "STARTUP_MARKER",
    "get_forge_rpc_url",
    "is_loopback",
    "should_start_fork",
]
