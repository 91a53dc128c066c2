"""Cryptographic helpers: Safe EIP-712 hashing, proposer signatures, audit keys."""

from __future__ import annotations

import base64
import os
from pathlib import Path
from typing import Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from eth_abi import encode
from eth_account import Account
from eth_utils import keccak, to_bytes, to_checksum_address, to_hex

from ..models import SafeTransaction

DOMAIN_SEPARATOR_TYPEHASH = keccak(text="EIP712Domain(uint256 chainId,address verifyingContract)")
SAFE_TX_TYPEHASH = keccak(
    text=(
        "SafeTx(address to,uint256 value,bytes data,uint8 operation,uint256 safeTxGas,"
        "uint256 baseGas,uint256 gasPrice,address gasToken,address refundReceiver,uint256 nonce)"
    )
)


# -- Safe transaction hashing ---------------------------------------------
def _data_bytes(data: Union[str, bytes, None]) -> bytes:
    if data is None:
        return b""
    if isinstance(data, bytes):
        return data
    if data in ("", "0x"):
        return b""
    return to_bytes(hexstr=data)


def domain_separator(safe_address: str, chain_id: int) -> bytes:
    return keccak(
        encode(
            ["bytes32", "uint256", "address"],
            [DOMAIN_SEPARATOR_TYPEHASH, int(chain_id), to_checksum_address(safe_address)],
        )
    )


def safe_tx_struct_hash(tx: SafeTransaction) -> bytes:
    return keccak(
        encode(
            [
                "bytes32",
                "address",
                "uint256",
                "bytes32",
                "uint8",
                "uint256",
                "uint256",
                "uint256",
                "address",
                "address",
                "uint256",
            ],
            [
                SAFE_TX_TYPEHASH,
                to_checksum_address(tx.to),
                int(tx.value),
                keccak(_data_bytes(tx.data)),
                int(tx.operation),
                int(tx.safe_tx_gas),
                int(tx.base_gas),
                int(tx.gas_price),
                to_checksum_address(tx.gas_token),
                to_checksum_address(tx.refund_receiver),
                int(tx.nonce),
            ],
        )
    )


def safe_tx_hash(tx: SafeTransaction, safe_address: str, chain_id: int) -> bytes:
    """Return the EIP-712 ``safeTxHash`` the Safe contract would compute."""

    return keccak(b"\x19\x01" + domain_separator(safe_address, chain_id) + safe_tx_struct_hash(tx))


def sign_safe_hash(tx_hash: bytes, private_key: str) -> str:
    """Sign ``tx_hash`` directly with the proposer key (``v`` is 27 or 28)."""

    signed = Account.unsafe_sign_hash(tx_hash, private_key)
    return to_hex(signed.signature)


def hash_hex(tx_hash: bytes) -> str:
    return to_hex(tx_hash)


# -- audit keys -----------------------------------------------------------
def load_or_create_key(path: Path) -> Ed25519PrivateKey:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        return serialization.load_pem_private_key(path.read_bytes(), password=None)
    key = Ed25519PrivateKey.generate()
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    path.write_bytes(pem)
    os.chmod(path, 0o600)
    return key


def sign_digest(key: Ed25519PrivateKey, digest: bytes) -> str:
    return base64.b64encode(key.sign(digest)).decode("ascii")


def public_key_b64(key: Ed25519PrivateKey) -> str:
    raw = key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return base64.b64encode(raw).decode("ascii")


__all__ = [
    "DOMAIN_SEPARATOR_TYPEHASH",
    "SAFE_TX_TYPEHASH",
    "domain_separator",
    "hash_hex",
    "load_or_create_key",
    "public_key_b64",
    "safe_tx_hash",
    "safe_tx_struct_hash",
    "sign_digest",
    "sign_safe_hash",
]
