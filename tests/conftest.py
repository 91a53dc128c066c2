from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import keyring
import keyring.backend
import pytest
from eth_account import Account
from web3 import Web3

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from forgesafe.core.config import ProposerIdentity, SafeConfig  # noqa: E402
from forgesafe.models import SafeTransaction, TransactionPage  # noqa: E402
from forgesafe.utils.logbook import Logbook  # noqa: E402

PRIVATE_KEY = "0x" + "4c" * 32
PROPOSER_ADDRESS = Account.from_key(PRIVATE_KEY).address
SAFE_ADDRESS = Web3.to_checksum_address("0x" + "5a" * 20)
TARGET = Web3.to_checksum_address("0x" + "c0" * 20)
OWNERS = [PROPOSER_ADDRESS, Web3.to_checksum_address("0x" + "0b" * 20)]

CONFIG_ENV = (
    "RPC_URL",
    "CHAIN_ID",
    "SAFE_ADDRESS",
    "SAFE_API_KEY",
    "PROPOSER_PRIVATE_KEY",
    "PROPOSER_ADDRESS",
    "SAFE_TX_SERVICE_URL",
    "LOG_LEVEL",
    "FORGESAFE_KEYRING_SERVICE",
)


class MemoryKeyring(keyring.backend.KeyringBackend):
    priority = 1

    def __init__(self) -> None:
        self._data: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self._data.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self._data[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        self._data.pop((service, username), None)


class _Call:
    def __init__(self, value: Any) -> None:
        self._value = value

    def call(self) -> Any:
        value = self._value() if callable(self._value) else self._value
        if isinstance(value, Exception):
            raise value
        return value


class FakeSafeContract:
    """Stand-in for a web3 Safe contract exposing nonce/getOwners/getThreshold."""

    def __init__(self, nonces: List[Any], owners: Optional[List[str]] = None, threshold: int = 2) -> None:
        self.nonces = list(nonces)
        self.nonce_reads = 0
        self.owners = list(OWNERS if owners is None else owners)
        self.threshold = threshold
        self.functions = SimpleNamespace(
            nonce=lambda: _Call(self._next_nonce),
            getOwners=lambda: _Call(lambda: self.owners),
            getThreshold=lambda: _Call(lambda: self.threshold),
        )

    def _next_nonce(self) -> Any:
        self.nonce_reads += 1
        if len(self.nonces) > 1:
            return self.nonces.pop(0)
        return self.nonces[0]


class FakeService:
    """In-memory Safe Transaction Service recording every proposal."""

    def __init__(self, failures: Optional[List[Optional[Exception]]] = None) -> None:
        self.failures = list(failures or [])
        self.proposals: List[Dict[str, Any]] = []
        self.attempts: List[int] = []
        self.queued: List[Dict[str, Any]] = []
        self.info: Dict[str, Any] = {"address": SAFE_ADDRESS, "nonce": 0, "threshold": 2, "owners": OWNERS, "version": "1.4.1"}
        self.calls: List[tuple] = []

    def propose(self, safe_address: str, tx: SafeTransaction, *, safe_tx_hash: str, sender: str, signature: str) -> None:
        self.attempts.append(tx.nonce)
        if self.failures:
            failure = self.failures.pop(0)
            if failure is not None:
                raise failure
        self.proposals.append(
            {
                "safe": safe_address,
                "tx": tx,
                "hash": safe_tx_hash,
                "sender": sender,
                "signature": signature,
            }
        )

    def multisig_transactions(self, safe_address: str, **kwargs: Any) -> TransactionPage:
        self.calls.append(("multisig", kwargs))
        return TransactionPage(results=list(self.queued), count=len(self.queued))

    def pending_transactions(self, safe_address: str, current_nonce: int, limit: Optional[int] = None) -> TransactionPage:
        self.calls.append(("pending", {"current_nonce": current_nonce, "limit": limit}))
        return TransactionPage(results=list(self.queued), count=len(self.queued))

    def all_transactions(self, safe_address: str, limit: Optional[int] = None) -> TransactionPage:
        self.calls.append(("all", {"limit": limit}))
        return TransactionPage(results=[], count=0)

    def incoming_transfers(self, safe_address: str, limit: Optional[int] = None) -> TransactionPage:
        self.calls.append(("incoming", {"limit": limit}))
        return TransactionPage(results=[], count=0)

    def module_transactions(self, safe_address: str, limit: Optional[int] = None) -> TransactionPage:
        self.calls.append(("module", {"limit": limit}))
        return TransactionPage(results=[], count=0)

    def get_transaction(self, safe_tx_hash: str) -> Dict[str, Any]:
        return {"safeTxHash": safe_tx_hash}

    def safe_info(self, safe_address: str) -> Dict[str, Any]:
        return dict(self.info)


@pytest.fixture(autouse=True)
def isolated_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    state = tmp_path / "state"
    monkeypatch.setenv("FORGESAFE_STATE_DIR", str(state))
    monkeypatch.setenv("FORGESAFE_PROJECT_ROOT", str(tmp_path / "project"))
    for key in CONFIG_ENV:
        monkeypatch.delenv(key, raising=False)
    keyring.set_keyring(MemoryKeyring())
    return state


@pytest.fixture()
def logbook(isolated_state: Path) -> Logbook:
    return Logbook(isolated_state, console=False)


@pytest.fixture()
def safe_config() -> SafeConfig:
    return SafeConfig(
        rpc_url="https://sepolia.example.org/v2/secret",
        chain_id=11155111,
        safe_address=SAFE_ADDRESS,
        api_key="api-key",
    )


@pytest.fixture()
def proposer() -> ProposerIdentity:
    return ProposerIdentity(address=PROPOSER_ADDRESS, private_key=PRIVATE_KEY)


@pytest.fixture()
def sleeps() -> List[float]:
    return []
