"""Foundry broadcast artifact access."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional, Union

from ..errors import BroadcastNotFoundError, ErrorCode, FileSystemError, InvalidArtifactError
from ..models import BroadcastRecord, BroadcastTransaction
from ..utils.logbook import Logbook
from ..utils.paths import broadcast_dir

RUN_LATEST = "run-latest.json"
SCRIPT_SUFFIX = ".s.sol"


class BroadcastManager:
    """Read ``run-latest.json`` records written by ``forge script --broadcast``."""

    def __init__(self, *, root: Optional[Path] = None, logbook: Optional[Logbook] = None) -> None:
        self._broadcast_dir = broadcast_dir(root)
        self.logbook = logbook or Logbook()

    @property
    def directory(self) -> Path:
        return self._broadcast_dir

    def broadcast_path(self, script_name: str, chain_id: Union[str, int]) -> Path:
        return self._broadcast_dir / f"{script_name}{SCRIPT_SUFFIX}" / str(chain_id) / RUN_LATEST

    def load_record(self, script_name: str, chain_id: Union[str, int]) -> BroadcastRecord:
        path = self.broadcast_path(script_name, chain_id)
        context = {"script_name": script_name, "chain_id": str(chain_id), "path": str(path)}
        if not path.exists():
            self.logbook.error("broadcast file not found", **context)
            raise BroadcastNotFoundError(f"Broadcast file not found: {path}", context=context)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise InvalidArtifactError(
                f"Broadcast file is not valid JSON: {path}",
                context={**context, "reason": str(exc)},
            ) from exc
        except OSError as exc:
            raise FileSystemError(
                f"Unable to read broadcast file: {path}",
                ErrorCode.FILE_PERMISSION_ERROR,
                {**context, "reason": str(exc)},
            ) from exc

        if not isinstance(payload, dict) or not isinstance(payload.get("transactions"), list):
            raise InvalidArtifactError(
                f"Broadcast file has no transactions array: {path}",
                context=context,
            )
        transactions: List[BroadcastTransaction] = []
        for index, entry in enumerate(payload["transactions"]):
            if not isinstance(entry, dict):
                raise InvalidArtifactError(
                    f"Malformed transaction entry at index {index}",
                    context={**context, "index": index},
                )
            transactions.append(BroadcastTransaction.from_json(entry))
        return BroadcastRecord(
            script_name=script_name,
            chain_id=str(chain_id),
            transactions=transactions,
            timestamp=payload.get("timestamp"),
            commit=payload.get("commit"),
        )

    def read_broadcast(self, script_name: str, chain_id: Union[str, int]) -> List[BroadcastTransaction]:
        """Return the ``CALL`` entries of the latest run, in recorded order.

        Contract deployments and any other entry types are dropped; only
        direct calls can be replayed through the multisig.
        """

        record = self.load_record(script_name, chain_id)
        calls = record.calls()
        self.logbook.info(
            "broadcast file loaded",
            script_name=script_name,
            chain_id=str(chain_id),
            total=len(record.transactions),
            calls=len(calls),
        )
        return calls

    def available_scripts(self) -> List[str]:
        if not self._broadcast_dir.is_dir():
            return []
        return sorted(
            entry.name[: -len(SCRIPT_SUFFIX)]
            for entry in self._broadcast_dir.iterdir()
            if entry.is_dir() and entry.name.endswith(SCRIPT_SUFFIX)
        )

    def available_chains(self, script_name: str) -> List[str]:
        script_dir = self._broadcast_dir / f"{script_name}{SCRIPT_SUFFIX}"
        if not script_dir.is_dir():
            return []
        return sorted(entry.name for entry in script_dir.iterdir() if entry.is_dir() and entry.name.isdigit())


__all__ = ["BroadcastManager", "RUN_LATEST"]
