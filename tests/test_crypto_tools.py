from __future__ import annotations

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import keccak, to_bytes

from forgesafe.models import ZERO_ADDRESS, SafeTransaction
from forgesafe.utils.crypto_tools import safe_tx_hash, sign_safe_hash

from conftest import PRIVATE_KEY, PROPOSER_ADDRESS, SAFE_ADDRESS, TARGET


def _typed_data(tx: SafeTransaction, chain_id: int) -> dict:
    return {
        "types": {
            "EIP712Domain": [
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            "SafeTx": [
                {"name": "to", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "data", "type": "bytes"},
                {"name": "operation", "type": "uint8"},
                {"name": "safeTxGas", "type": "uint256"},
                {"name": "baseGas", "type": "uint256"},
                {"name": "gasPrice", "type": "uint256"},
                {"name": "gasToken", "type": "address"},
                {"name": "refundReceiver", "type": "address"},
                {"name": "nonce", "type": "uint256"},
            ],
        },
        "primaryType": "SafeTx",
        "domain": {"chainId": chain_id, "verifyingContract": SAFE_ADDRESS},
        "message": {
            "to": tx.to,
            "value": tx.value,
            "data": to_bytes(hexstr=tx.data),
            "operation": tx.operation,
            "safeTxGas": 0,
            "baseGas": 0,
            "gasPrice": 0,
            "gasToken": ZERO_ADDRESS,
            "refundReceiver": ZERO_ADDRESS,
            "nonce": tx.nonce,
        },
    }


def test_safe_tx_hash_matches_eip712_encoding() -> None:
    tx = SafeTransaction(to=TARGET, value=10, data="0xa9059cbb", operation=0, nonce=12)
    signable = encode_typed_data(full_message=_typed_data(tx, 11155111))
    expected = keccak(b"\x19" + signable.version + signable.header + signable.body)

    assert safe_tx_hash(tx, SAFE_ADDRESS, 11155111) == expected


def test_hash_depends_on_nonce_and_chain() -> None:
    tx = SafeTransaction(to=TARGET, value=0, data="0x", operation=0, nonce=1)
    bumped = SafeTransaction(to=TARGET, value=0, data="0x", operation=0, nonce=2)

    assert safe_tx_hash(tx, SAFE_ADDRESS, 1) != safe_tx_hash(bumped, SAFE_ADDRESS, 1)
    assert safe_tx_hash(tx, SAFE_ADDRESS, 1) != safe_tx_hash(tx, SAFE_ADDRESS, 11155111)


def test_signature_recovers_proposer() -> None:
    tx = SafeTransaction(to=TARGET, value=0, data="0x", operation=0, nonce=1)
    tx_hash = safe_tx_hash(tx, SAFE_ADDRESS, 11155111)

    signature = sign_safe_hash(tx_hash, PRIVATE_KEY)

    assert signature.startswith("0x")
    assert len(signature) == 2 + 65 * 2
    assert int(signature[-2:], 16) in (27, 28)
    assert Account._recover_hash(tx_hash, signature=to_bytes(hexstr=signature)) == PROPOSER_ADDRESS
