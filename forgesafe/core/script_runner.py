"""Run ``forge script`` against a fork or the target network."""

from __future__ import annotations

import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import Web3Exception

from ..errors import ErrorCode, ForgeSafeError, FoundryError, ForkStartupError, ScriptExecutionError
from ..utils.logbook import Logbook
from ..utils.validation import redact_url
from .config import DEFAULT_CHAIN_ID
from .fork_manager import ForkConfig, ForkManager, get_forge_rpc_url, should_start_fork

FORK_SETTLE_SECONDS = 3.0
RPC_TIMEOUT = 10

# more specific names first so "arbitrum-sepolia" is not read as "sepolia"
HOSTNAME_CHAIN_IDS = (
    ("arbitrum-sepolia", 421614),
    ("arb-sepolia", 421614),
    ("sepolia", 11155111),
    ("arbitrum", 42161),
    ("arb-mainnet", 42161),
    ("ethereum", 1),
    ("eth-mainnet", 1),
    ("localhost", 31337),
    ("127.0.0.1", 31337),
    ("hardhat", 31337),
)


@dataclass(frozen=True)
class ScriptOutcome:
    """Result of the script phase: either a chain id or the failure that occurred."""

    ok: bool
    chain_id: Optional[int] = None
    error: Optional[ForgeSafeError] = None

    @classmethod
    def success(cls, chain_id: int) -> "ScriptOutcome":
        return cls(ok=True, chain_id=chain_id)

    @classmethod
    def failed(cls, error: ForgeSafeError) -> "ScriptOutcome":
        return cls(ok=False, error=error)

    @property
    def reason(self) -> Optional[str]:
        return self.error.message if self.error is not None else None

    def raise_for_status(self) -> int:
        if not self.ok or self.chain_id is None:
            raise self.error or FoundryError("Script execution failed")
        return self.chain_id


def default_contract_name(script_path: str) -> str:
    name = Path(script_path).name
    for suffix in (".s.sol", ".sol"):
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name


def parse_env_overrides(env_vars: Optional[str]) -> Dict[str, str]:
    """Parse ``"KEY1=value1 KEY2=value2"`` into a mapping."""

    result: Dict[str, str] = {}
    if not env_vars:
        return result
    for pair in env_vars.split():
        key, _, value = pair.partition("=")
        if key and value:
            result[key] = value
    return result


def chain_id_from_hostname(rpc_url: str) -> Optional[int]:
    url = rpc_url.lower()
    for marker, chain_id in HOSTNAME_CHAIN_IDS:
        if marker in url:
            return chain_id
    return None


def query_chain_id(rpc_url: str) -> int:
    web3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": RPC_TIMEOUT}))
    return int(web3.eth.chain_id)


def resolve_chain_id(
    rpc_url: str,
    *,
    logbook: Optional[Logbook] = None,
    query: Callable[[str], int] = query_chain_id,
) -> int:
    """Ask the node first, then guess from the hostname, then assume Sepolia."""

    log = logbook or Logbook()
    try:
        chain_id = query(rpc_url)
        log.info("chain id retrieved from rpc", chain_id=chain_id, rpc_url=redact_url(rpc_url))
        return chain_id
    except (RequestException, Web3Exception, OSError, ValueError) as exc:
        log.warning("failed to fetch chain id from rpc", rpc_url=redact_url(rpc_url), error=type(exc).__name__)

    guessed = chain_id_from_hostname(rpc_url)
    if guessed is not None:
        log.info("using chain id derived from rpc hostname", chain_id=guessed)
        return guessed
    log.info("using default chain id", chain_id=DEFAULT_CHAIN_ID)
    return DEFAULT_CHAIN_ID


class ScriptRunner:
    """Invoke ``forge script --broadcast`` with inherited stdio."""

    def __init__(
        self,
        *,
        fork_manager: Optional[ForkManager] = None,
        logbook: Optional[Logbook] = None,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        sleep: Callable[[float], None] = time.sleep,
        chain_id_query: Callable[[str], int] = query_chain_id,
        forge_bin: str = "forge",
        fork_settle: float = FORK_SETTLE_SECONDS,
        cwd: Optional[Path] = None,
    ) -> None:
        self.logbook = logbook or Logbook()
        self.fork_manager = fork_manager or ForkManager(logbook=self.logbook)
        self._run = run
        self._sleep = sleep
        self._chain_id_query = chain_id_query
        self.forge_bin = forge_bin
        self.fork_settle = fork_settle
        self.cwd = cwd

    def build_command(
        self,
        script_path: str,
        contract_name: str,
        rpc_url: str,
        extra_args: Sequence[str] = (),
    ) -> List[str]:
        return [
            self.forge_bin,
            "script",
            f"{script_path}:{contract_name}",
            "--rpc-url",
            rpc_url,
            "--broadcast",
            "-vvv",
            *extra_args,
        ]

    def _maybe_start_fork(self, rpc_url: str, skip_fork: bool) -> Optional[ForkConfig]:
        if not should_start_fork(rpc_url, skip_fork):
            return None
        if not self.fork_manager.check_availability():
            self.logbook.warning("anvil is not available, continuing without fork")
            return None
        config = ForkConfig(fork_url=rpc_url)
        self.fork_manager.start_fork(config)
        self._sleep(self.fork_settle)
        return config

    def run(
        self,
        script_path: str,
        contract_name: Optional[str] = None,
        rpc_url: str = "http://localhost:8545",
        extra_args: Optional[Sequence[str]] = None,
        env_overrides: Optional[Dict[str, str]] = None,
        *,
        skip_fork: bool = False,
    ) -> ScriptOutcome:
        """Run the script and return a :class:`ScriptOutcome`; never raises for script failures."""

        contract = contract_name or default_contract_name(script_path)
        context = {"script_path": script_path, "contract_name": contract}
        try:
            try:
                fork_config = self._maybe_start_fork(rpc_url, skip_fork)
            except ForkStartupError as exc:
                return ScriptOutcome.failed(exc)

            forge_rpc_url = get_forge_rpc_url(rpc_url, self.fork_manager.is_running(), fork_config)
            command = self.build_command(script_path, contract, forge_rpc_url, list(extra_args or ()))
            env = {**os.environ, **(env_overrides or {})}
            self.logbook.info(
                "running forge script",
                rpc_url=redact_url(forge_rpc_url),
                forked=fork_config is not None,
                env_overrides=sorted(env_overrides or {}),
                **context,
            )
            try:
                completed = self._run(command, env=env, cwd=self.cwd, check=False)
            except OSError as exc:
                self.logbook.error("failed to launch forge", error=str(exc), **context)
                return ScriptOutcome.failed(
                    FoundryError(f"Failed to launch forge: {exc}", ErrorCode.FOUNDRY_NOT_FOUND, context)
                )
            self.fork_manager.stop()

            if completed.returncode != 0:
                self.logbook.error("forge script failed", exit_code=completed.returncode, **context)
                return ScriptOutcome.failed(
                    ScriptExecutionError(
                        f"Forge process exited with code {completed.returncode}",
                        exit_code=completed.returncode,
                        context=context,
                    )
                )
            chain_id = resolve_chain_id(rpc_url, logbook=self.logbook, query=self._chain_id_query)
            self.logbook.info("forge script completed", chain_id=chain_id, **context)
            return ScriptOutcome.success(chain_id)
        finally:
            self.fork_manager.stop_on_error()


__all__ = [
    "DEFAULT_CHAIN_ID",
    "ScriptOutcome",
    "ScriptRunner",
    "chain_id_from_hostname",
    "default_contract_name",
    "parse_env_overrides",
    "query_chain_id",
    "resolve_chain_id",
]
