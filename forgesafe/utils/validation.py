"""Field validators raising :class:`~forgesafe.errors.ValidationError`."""

from __future__ import annotations

import re
from typing import Optional, Union
from urllib.parse import urlparse

from web3 import Web3

from ..errors import ErrorCode, ValidationError

KNOWN_CHAIN_IDS = (1, 11155111, 42161, 421614, 31337, 1337)
RPC_SCHEMES = ("http", "https", "ws", "wss")
_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")
_DECIMAL_RE = re.compile(r"^\d+$")


def strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def is_valid_hex(value: Optional[str]) -> bool:
    if not value:
        return False
    return bool(_HEX_RE.match(strip_0x(value)))


def is_valid_address(address: Optional[str]) -> bool:
    if not address:
        return False
    try:
        return bool(Web3.is_address(address))
    except (TypeError, ValueError):
        return False


def validate_address(address: Optional[str], field: str = "address") -> str:
    if not address:
        raise ValidationError(f"{field} is required", ErrorCode.INVALID_ADDRESS, {"field": field, "value": address})
    if not is_valid_address(address):
        raise ValidationError(
            f"Invalid {field}: {address}",
            ErrorCode.INVALID_ADDRESS,
            {"field": field, "value": address},
        )
    return Web3.to_checksum_address(address)


def validate_private_key(private_key: Optional[str], field: str = "private key") -> str:
    if not private_key:
        raise ValidationError(f"{field} is required", ErrorCode.INVALID_PRIVATE_KEY, {"field": field})
    clean = strip_0x(private_key.strip())
    if len(clean) != 64:
        raise ValidationError(
            f"Invalid {field} length. Expected 64 characters (32 bytes)",
            ErrorCode.INVALID_PRIVATE_KEY,
            {"field": field, "length": len(clean)},
        )
    if not _HEX_RE.match(clean):
        raise ValidationError(
            f"Invalid {field} format. Must be a valid hexadecimal string",
            ErrorCode.INVALID_PRIVATE_KEY,
            {"field": field},
        )
    return "0x" + clean


def redact_url(url: Optional[str]) -> str:
    """Drop path, query and credentials; RPC URLs often embed API keys."""

    if not url:
        return ""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.hostname:
        return "<invalid url>"
    port = f":{parsed.port}" if parsed.port else ""
    suffix = "/..." if parsed.path not in ("", "/") or parsed.query else ""
    return f"{parsed.scheme}://{parsed.hostname}{port}{suffix}"


def validate_rpc_url(rpc_url: Optional[str], field: str = "RPC URL") -> str:
    if not rpc_url:
        raise ValidationError(f"{field} is required", ErrorCode.INVALID_RPC_URL, {"field": field})
    try:
        parsed = urlparse(rpc_url)
    except ValueError as exc:
        raise ValidationError(
            f"Invalid {field} format",
            ErrorCode.INVALID_RPC_URL,
            {"field": field, "value": redact_url(rpc_url)},
        ) from exc
    if parsed.scheme not in RPC_SCHEMES:
        raise ValidationError(
            f"Invalid {field} protocol. Must be http, https, ws, or wss",
            ErrorCode.INVALID_RPC_URL,
            {"field": field, "protocol": parsed.scheme},
        )
    if not parsed.netloc:
        raise ValidationError(
            f"Invalid {field} format",
            ErrorCode.INVALID_RPC_URL,
            {"field": field, "value": redact_url(rpc_url)},
        )
    return rpc_url


def validate_chain_id(chain_id: Union[str, int, None], field: str = "chain ID") -> int:
    if chain_id is None or chain_id == "":
        raise ValidationError(f"{field} is required", ErrorCode.INVALID_CONFIGURATION, {"field": field})
    try:
        numeric = int(chain_id)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"Invalid {field}: must be a non-negative number",
            ErrorCode.INVALID_CONFIGURATION,
            {"field": field, "value": chain_id},
        ) from exc
    if numeric < 0:
        raise ValidationError(
            f"Invalid {field}: must be a non-negative number",
            ErrorCode.INVALID_CONFIGURATION,
            {"field": field, "value": chain_id},
        )
    return numeric


def is_decimal(value: str) -> bool:
    return bool(_DECIMAL_RE.match(value))


__all__ = [
    "KNOWN_CHAIN_IDS",
    "is_decimal",
    "is_valid_address",
    "is_valid_hex",
    "redact_url",
    "strip_0x",
    "validate_address",
    "validate_chain_id",
    "validate_private_key",
    "validate_rpc_url",
]
