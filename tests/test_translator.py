from __future__ import annotations

import pytest

from forgesafe.core.translator import convert_hex_to_decimal, normalize, to_meta_transaction, validate
from forgesafe.errors import ErrorCode, ValidationError
from forgesafe.models import BroadcastTransaction, OperationType, TransactionInput

from conftest import TARGET


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("0x0", "0"),
        ("0x", "0"),
        ("", "0"),
        (None, "0"),
        ("0xff", "255"),
        ("0xde0b6b3a7640000", "1000000000000000000"),
        ("ff", "255"),
    ],
)
def test_convert_hex_to_decimal(raw, expected) -> None:
    assert convert_hex_to_decimal(raw) == expected


def test_convert_invalid_hex_defaults_to_zero_and_warns(logbook) -> None:
    assert convert_hex_to_decimal("0xnothex", logbook) == "0"
    for handler in logbook._logger.handlers:
        handler.flush()
    assert "could not convert hex value" in logbook.log_file.read_text(encoding="utf-8")


def test_normalize_broadcast_call() -> None:
    tx = BroadcastTransaction(transaction_type="CALL", to=TARGET, input="0xabcdef", value="0x10")
    normalized = normalize(tx)
    assert normalized == TransactionInput(to=TARGET, value="16", data="0xabcdef", operation="call")


def test_validate_accepts_well_formed_input() -> None:
    validate(TransactionInput(to=TARGET, value="0", data="0x"))
    validate(TransactionInput(to=TARGET.lower(), value="0x10", data="0xa9059cbb", operation="delegatecall"))


def test_validate_rejects_bad_address_first() -> None:
    with pytest.raises(ValidationError) as excinfo:
        validate(TransactionInput(to="0xINVALID", value="not-a-number", data="zz", operation="bogus"))
    assert excinfo.value.code is ErrorCode.INVALID_ADDRESS
    assert excinfo.value.field == "to"


def test_validate_rejects_bad_value() -> None:
    with pytest.raises(ValidationError) as excinfo:
        validate(TransactionInput(to=TARGET, value="-5", data="zz"))
    assert excinfo.value.field == "value"


def test_validate_rejects_bad_calldata() -> None:
    with pytest.raises(ValidationError) as excinfo:
        validate(TransactionInput(to=TARGET, value="1", data="0xzz"))
    assert excinfo.value.field == "data"
    assert excinfo.value.code is ErrorCode.INVALID_HEX_VALUE


def test_validate_rejects_unknown_operation() -> None:
    with pytest.raises(ValidationError) as excinfo:
        validate(TransactionInput(to=TARGET, value="1", data="0x", operation="create"))
    assert excinfo.value.field == "operation"


def test_to_meta_transaction_maps_operation_and_value() -> None:
    call = to_meta_transaction(TransactionInput(to=TARGET, value="100", data="0x01"))
    assert call.operation is OperationType.CALL
    assert call.value == "100"

    delegate = to_meta_transaction(TransactionInput(to=TARGET, value="0x64", data="0x01", operation="delegatecall"))
    assert delegate.operation is OperationType.DELEGATE_CALL
    assert delegate.value == "100"
    assert delegate.as_dict() == {"to": TARGET, "value": "100", "data": "0x01", "operation": 1}


def test_to_meta_transaction_checksums_target() -> None:
    meta = to_meta_transaction(TransactionInput(to=TARGET.lower(), value="0x0", data="0x"))
    assert meta.to == TARGET
    assert meta.as_dict()["to"] == TARGET
