"""Utility helpers exposed by forgesafe."""

from .crypto_tools import safe_tx_hash, sign_safe_hash
from .logbook import Logbook
from .paths import broadcast_dir, project_root, state_dir
from .validation import (
    is_valid_address,
    is_valid_hex,
    redact_url,
    validate_address,
    validate_chain_id,
    validate_private_key,
    validate_rpc_url,
)

__all__ = [
    "Logbook",
    "broadcast_dir",
    "is_valid_address",
    "is_valid_hex",
    "project_root",
    "redact_url",
    "safe_tx_hash",
    "sign_safe_hash",
    "state_dir",
    "validate_address",
    "validate_chain_id",
    "validate_private_key",
    "validate_rpc_url",
]
