"""Script-to-Safe pipeline: run forge, read the broadcast, propose the calls."""

from __future__ import annotations

import shlex
import time
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence

from rich.console import Console

from ..errors import ConfigurationError, ErrorCode, ForgeSafeError, SafeTransactionError, ValidationError
from ..models import TransactionInput
from ..ui.render import render_hashes, render_transactions, stderr_console
from ..utils.logbook import Logbook
from ..utils.validation import redact_url, validate_rpc_url
from .broadcast_manager import BroadcastManager
from .safe_manager import SafeManager
from .script_runner import (
    ScriptRunner,
    default_contract_name,
    parse_env_overrides,
    query_chain_id,
    resolve_chain_id,
)
from .translator import normalize, to_meta_transaction, validate

DEFAULT_SCRIPT_PATH = "script/Deploy.s.sol"
FALLBACK_DELAY_SECONDS = 1.0


@dataclass(frozen=True)
class ExecutionConfig:
    rpc_url: Optional[str] = None
    script_path: Optional[str] = None
    contract_name: Optional[str] = None
    script_name: Optional[str] = None
    forge_options: Optional[str] = None
    env_vars: Optional[str] = None
    chain_id: Optional[int] = None
    dry_run: bool = False
    skip_fork: bool = False

    @property
    def resolved_script_path(self) -> str:
        if self.script_path:
            return self.script_path
        if self.contract_name:
            return f"script/{self.contract_name}.s.sol"
        return DEFAULT_SCRIPT_PATH

    @property
    def broadcast_name(self) -> str:
        return self.script_name or default_contract_name(self.resolved_script_path)


class TransactionExecutor:
    """Drive a batch from a forge script (or an existing broadcast) to Safe proposals."""

    def __init__(
        self,
        safe_manager: Optional[SafeManager] = None,
        *,
        script_runner: Optional[ScriptRunner] = None,
        broadcast_manager: Optional[BroadcastManager] = None,
        logbook: Optional[Logbook] = None,
        console: Optional[Console] = None,
        sleep: Callable[[float], None] = time.sleep,
        chain_id_query: Callable[[str], int] = query_chain_id,
        fallback_delay: float = FALLBACK_DELAY_SECONDS,
    ) -> None:
        self.logbook = logbook or Logbook()
        self.safe_manager = safe_manager
        self.script_runner = script_runner or ScriptRunner(logbook=self.logbook, sleep=sleep)
        self.broadcast_manager = broadcast_manager or BroadcastManager(logbook=self.logbook)
        self.console = console or stderr_console()
        self._sleep = sleep
        self._chain_id_query = chain_id_query
        self.fallback_delay = fallback_delay

    def _require_safe(self) -> SafeManager:
        if self.safe_manager is None:
            raise ConfigurationError(
                "Safe configuration is required to propose transactions",
                ErrorCode.MISSING_ENVIRONMENT_VARIABLE,
            )
        return self.safe_manager

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def validate_config(self, config: ExecutionConfig) -> None:
        if not config.script_path and not config.env_vars and not config.contract_name:
            raise ConfigurationError(
                "Either script_path, env_vars, or contract_name is required",
                ErrorCode.INVALID_CONFIGURATION,
                {"field": "script_path"},
            )
        if config.rpc_url:
            validate_rpc_url(config.rpc_url, "rpc_url")

    def execute_from_script(self, config: ExecutionConfig) -> List[str]:
        """Run the forge script, then propose what it broadcast.

        When the script fails, the latest existing broadcast for the same
        script and chain is used instead.
        """

        self.validate_config(config)
        rpc_url = config.rpc_url or "http://localhost:8545"
        self.logbook.info(
            "starting script execution",
            script_path=config.resolved_script_path,
            contract_name=config.contract_name,
            rpc_url=redact_url(rpc_url),
            has_env_vars=bool(config.env_vars),
            dry_run=config.dry_run,
        )
        outcome = self.script_runner.run(
            config.resolved_script_path,
            config.contract_name,
            rpc_url,
            shlex.split(config.forge_options or ""),
            parse_env_overrides(config.env_vars),
            skip_fork=config.skip_fork,
        )
        if outcome.ok and outcome.chain_id is not None:
            return self._process_broadcast(config, outcome.chain_id)

        self.logbook.audit(
            "executor.fallback",
            ok=False,
            script_path=config.resolved_script_path,
            reason=outcome.reason,
        )
        try:
            chain_id = config.chain_id or resolve_chain_id(rpc_url, logbook=self.logbook, query=self._chain_id_query)
            return self._process_broadcast(config, chain_id)
        except ForgeSafeError as exc:
            self.logbook.error("fallback to broadcast file failed", reason=exc.message)
            raise SafeTransactionError(
                "Both Foundry script execution and broadcast file fallback failed",
                ErrorCode.SAFE_TRANSACTION_FAILED,
                {
                    "script_name": config.broadcast_name,
                    "script_error": outcome.reason,
                    "fallback_error": exc.message,
                },
            ) from exc

    def execute_from_broadcast(self, config: ExecutionConfig) -> List[str]:
        chain_id = config.chain_id
        if chain_id is None:
            if not config.rpc_url:
                raise ConfigurationError(
                    "Chain ID must be provided or derivable from the RPC URL",
                    ErrorCode.INVALID_CONFIGURATION,
                    {"field": "chain_id"},
                )
            chain_id = resolve_chain_id(config.rpc_url, logbook=self.logbook, query=self._chain_id_query)
        return self._process_broadcast(config, chain_id)

    def execute_single(
        self,
        to: str,
        value: str = "0",
        data: str = "0x",
        operation: str = "call",
        dry_run: bool = False,
    ) -> Optional[str]:
        tx = TransactionInput(to=to, value=value, data=data, operation=operation)
        validate(tx)
        hashes = self.execute_transactions([tx], dry_run)
        return hashes[0] if hashes else None

    # ------------------------------------------------------------------
    # Batch processing
    # ------------------------------------------------------------------
    def _process_broadcast(self, config: ExecutionConfig, chain_id: int) -> List[str]:
        script_name = config.broadcast_name
        calls = self.broadcast_manager.read_broadcast(script_name, chain_id)
        if not calls:
            self.logbook.warning("no transactions found in broadcast file", script_name=script_name, chain_id=chain_id)
            return []

        sender: Optional[str] = None
        if not config.dry_run:
            safe = self._require_safe()
            owners = safe.get_owners()
            if not owners:
                raise SafeTransactionError(
                    "No owners found for the Safe",
                    ErrorCode.INVALID_CONFIGURATION,
                    {"safe_address": safe.safe_address},
                )
            sender = owners[0]
            self.logbook.info("using Safe owner as from address", sender=sender)

        inputs = [replace(normalize(tx, self.logbook), sender=sender) for tx in calls]
        return self.execute_transactions(inputs, config.dry_run)

    def _validate_batch(self, transactions: Sequence[TransactionInput]) -> None:
        for index, tx in enumerate(transactions):
            try:
                validate(tx)
            except ValidationError as exc:
                raise ValidationError(
                    f"Invalid transaction data at index {index}",
                    ErrorCode.INVALID_TRANSACTION_DATA,
                    {"index": index, "field": exc.field, "reason": exc.message, "code": exc.code.value},
                ) from exc

    def execute_transactions(self, transactions: Sequence[TransactionInput], dry_run: bool = False) -> List[str]:
        """Propose ``transactions`` in order and return their Safe tx hashes.

        Sequential explicit nonces are tried first. If that batch fails, each
        transaction is proposed on its own at the next free nonce; any failure
        there aborts the rest.
        """

        if not transactions:
            self.logbook.info("no transactions to execute")
            return []
        self._validate_batch(transactions)
        self.logbook.info("executing transactions", count=len(transactions), dry_run=dry_run)
        render_transactions(self.console, transactions, dry_run=dry_run)
        if dry_run:
            return []

        safe = self._require_safe()
        metas = [to_meta_transaction(tx) for tx in transactions]
        try:
            hashes = safe.propose_sequential(metas)
        except ForgeSafeError as exc:
            self.logbook.warning(
                "sequential nonce method failed, falling back to individual proposals",
                reason=exc.message,
                code=exc.code.value,
            )
            self.logbook.audit("executor.individual_fallback", ok=False, reason=exc.message)
        else:
            render_hashes(self.console, hashes)
            return hashes

        hashes = []
        for index, meta in enumerate(metas):
            try:
                hashes.append(safe.propose_transaction(meta))
            except ForgeSafeError as exc:
                self.logbook.error("individual proposal failed", index=index, reason=exc.message)
                raise SafeTransactionError(
                    f"Failed to propose transaction {index + 1} of {len(metas)}",
                    ErrorCode.SAFE_TRANSACTION_FAILED,
                    {"index": index, "to": meta.to, "proposed": hashes, "reason": exc.message},
                ) from exc
            if index < len(metas) - 1:
                self._sleep(self.fallback_delay)
        render_hashes(self.console, hashes, fallback=True)
        return hashes


__all__ = ["DEFAULT_SCRIPT_PATH", "ExecutionConfig", "TransactionExecutor"]
