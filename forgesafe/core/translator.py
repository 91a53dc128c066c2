"""Translate broadcast calls into Safe meta-transactions."""

from __future__ import annotations

from typing import Optional

from web3 import Web3

from ..errors import ErrorCode, ValidationError
from ..models import BroadcastTransaction, MetaTransactionData, OperationType, TransactionInput
from ..utils.logbook import Logbook
from ..utils.validation import is_decimal, is_valid_address, is_valid_hex, strip_0x

OPERATIONS = ("call", "delegatecall")


def convert_hex_to_decimal(value: Optional[str], logbook: Optional[Logbook] = None) -> str:
    """Return ``value`` (hex wei) as a decimal string.

    Empty and zero values map to ``"0"``. Unparsable input is logged and
    treated as zero so a single bad value does not abort a batch.
    """

    if value is None:
        return "0"
    text = str(value).strip()
    if text in ("", "0x", "0X", "0x0", "0X0"):
        return "0"
    try:
        return str(int(strip_0x(text), 16))
    except ValueError:
        if logbook is not None:
            logbook.warning("could not convert hex value, defaulting to 0", value=text)
        return "0"


def normalize(tx: BroadcastTransaction, logbook: Optional[Logbook] = None) -> TransactionInput:
    return TransactionInput(
        to=tx.to or "",
        value=convert_hex_to_decimal(tx.value, logbook),
        data=tx.input or "0x",
        operation="call",
    )


def validate(tx: TransactionInput) -> None:
    """Raise :class:`ValidationError` for the first rule ``tx`` breaks."""

    if not tx.to or not is_valid_address(tx.to):
        raise ValidationError(
            f"Invalid transaction target address: {tx.to}",
            ErrorCode.INVALID_ADDRESS,
            {"field": "to", "value": tx.to},
        )
    if not tx.value or not (is_decimal(tx.value) or is_valid_hex(tx.value)):
        raise ValidationError(
            f"Invalid transaction value: {tx.value}",
            ErrorCode.INVALID_TRANSACTION_DATA,
            {"field": "value", "value": tx.value},
        )
    if tx.data and tx.data != "0x" and not is_valid_hex(tx.data):
        raise ValidationError(
            "Invalid transaction data: must be a hex string",
            ErrorCode.INVALID_HEX_VALUE,
            {"field": "data"},
        )
    if tx.operation not in OPERATIONS:
        raise ValidationError(
            f"Invalid operation: {tx.operation}",
            ErrorCode.INVALID_TRANSACTION_DATA,
            {"field": "operation", "value": tx.operation},
        )


def to_meta_transaction(tx: TransactionInput) -> MetaTransactionData:
    """Build the service payload for a validated ``tx``; ``to`` is checksummed."""

    return MetaTransactionData(
        to=Web3.to_checksum_address(tx.to),
        value=tx.value if is_decimal(tx.value) else convert_hex_to_decimal(tx.value),
        data=tx.data or "0x",
        operation=OperationType.from_name(tx.operation),
    )


__all__ = ["OPERATIONS", "convert_hex_to_decimal", "normalize", "to_meta_transaction", "validate"]
