"""Data model for broadcast artifacts, Safe transactions and service pages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class OperationType(IntEnum):
    """Safe-protocol operation tag."""

    CALL = 0
    DELEGATE_CALL = 1

    @classmethod
    def from_name(cls, name: str) -> "OperationType":
        return cls.DELEGATE_CALL if name == "delegatecall" else cls.CALL


@dataclass(frozen=True)
class BroadcastTransaction:
    """One call recorded by ``forge script`` in ``run-latest.json``."""

    transaction_type: str
    to: Optional[str]
    input: str
    value: str
    gas: Optional[str] = None
    nonce: Optional[str] = None
    contract_name: Optional[str] = None
    function: Optional[str] = None
    hash: Optional[str] = None

    @property
    def is_call(self) -> bool:
        return self.transaction_type == "CALL"

    @classmethod
    def from_json(cls, entry: Dict[str, Any]) -> "BroadcastTransaction":
        tx = entry.get("transaction") or {}
        return cls(
            transaction_type=str(entry.get("transactionType", "")),
            to=tx.get("to"),
            input=tx.get("input") or tx.get("data") or "0x",
            value=tx.get("value") or "0x0",
            gas=tx.get("gas"),
            nonce=tx.get("nonce"),
            contract_name=entry.get("contractName"),
            function=entry.get("function"),
            hash=entry.get("hash"),
        )


@dataclass(frozen=True)
class BroadcastRecord:
    script_name: str
    chain_id: str
    transactions: List[BroadcastTransaction] = field(default_factory=list)
    timestamp: Optional[int] = None
    commit: Optional[str] = None

    def calls(self) -> List[BroadcastTransaction]:
        return [tx for tx in self.transactions if tx.is_call]


@dataclass(frozen=True)
class TransactionInput:
    """Normalised transaction handed to the submission engine."""

    to: str
    value: str = "0"
    data: str = "0x"
    operation: str = "call"
    sender: Optional[str] = None


@dataclass(frozen=True)
class MetaTransactionData:
    to: str
    value: str
    data: str
    operation: OperationType = OperationType.CALL

    def as_dict(self) -> Dict[str, Any]:
        return {"to": self.to, "value": self.value, "data": self.data, "operation": int(self.operation)}


@dataclass(frozen=True)
class SafeTransaction:
    """A Safe ``SafeTx`` struct bound to an explicit nonce."""

    to: str
    value: int
    data: str
    operation: int
    nonce: int
    safe_tx_gas: int = 0
    base_gas: int = 0
    gas_price: int = 0
    gas_token: str = ZERO_ADDRESS
    refund_receiver: str = ZERO_ADDRESS

    @classmethod
    def from_meta(cls, meta: MetaTransactionData, nonce: int) -> "SafeTransaction":
        return cls(
            to=meta.to,
            value=int(meta.value or "0"),
            data=meta.data or "0x",
            operation=int(meta.operation),
            nonce=int(nonce),
        )

    def service_payload(self) -> Dict[str, Any]:
        return {
            "to": self.to,
            "value": str(self.value),
            "data": self.data if self.data not in ("", "0x") else None,
            "operation": self.operation,
            "safeTxGas": str(self.safe_tx_gas),
            "baseGas": str(self.base_gas),
            "gasPrice": str(self.gas_price),
            "gasToken": self.gas_token,
            "refundReceiver": self.refund_receiver,
            "nonce": self.nonce,
        }


@dataclass
class TransactionPage:
    results: List[Dict[str, Any]]
    count: int
    next: Optional[str] = None
    previous: Optional[str] = None

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "TransactionPage":
        results = list(payload.get("results") or [])
        return cls(
            results=results,
            count=int(payload.get("count", len(results)) or 0),
            next=payload.get("next"),
            previous=payload.get("previous"),
        )

    def as_dict(self) -> Dict[str, Any]:
        return {"results": self.results, "count": self.count, "next": self.next, "previous": self.previous}


@dataclass(frozen=True)
class SafeInfo:
    address: str
    nonce: int
    threshold: int
    owners: List[str]
    version: Optional[str] = None


__all__ = [
    "BroadcastRecord",
    "BroadcastTransaction",
    "MetaTransactionData",
    "OperationType",
    "SafeInfo",
    "SafeTransaction",
    "TransactionInput",
    "TransactionPage",
    "ZERO_ADDRESS",
]
