"""Safe proposal orchestration and read-through queries."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import Web3Exception

from ..errors import ConfigurationError, ErrorCode, NetworkError, NonceConflictError
from ..models import MetaTransactionData, SafeInfo, SafeTransaction, TransactionPage
from ..utils.crypto_tools import hash_hex, safe_tx_hash, sign_safe_hash
from ..utils.logbook import Logbook
from ..utils.validation import redact_url
from .config import ProposerIdentity, SafeConfig
from .tx_service import SafeTransactionServiceClient

PROPOSAL_DELAY_SECONDS = 0.5
RPC_TIMEOUT = 10

SAFE_ABI: List[Dict[str, Any]] = [
    {
        "inputs": [],
        "name": "nonce",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getOwners",
        "outputs": [{"internalType": "address[]", "name": "", "type": "address[]"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getThreshold",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class SafeManager:
    """Propose transactions to one Safe as one proposer.

    The nonce is always read from the Safe contract at call time and never
    cached between batches. Proposals within a batch are submitted one at a
    time, in order. Without a proposer the manager is read-only.
    """

    def __init__(
        self,
        config: SafeConfig,
        proposer: Optional[ProposerIdentity],
        *,
        service: Optional[SafeTransactionServiceClient] = None,
        contract: Any = None,
        logbook: Optional[Logbook] = None,
        sleep: Callable[[float], None] = time.sleep,
        proposal_delay: float = PROPOSAL_DELAY_SECONDS,
    ) -> None:
        self.config = config
        self.proposer = proposer
        self.logbook = logbook or Logbook()
        self.service = service or SafeTransactionServiceClient(
            config.chain_id,
            config.api_key,
            base_url=config.tx_service_url,
            logbook=self.logbook,
        )
        self._contract = contract
        self._sleep = sleep
        self.proposal_delay = proposal_delay

    @property
    def safe_address(self) -> str:
        return self.config.safe_address

    # ------------------------------------------------------------------
    # On-chain reads
    # ------------------------------------------------------------------
    def _get_contract(self) -> Any:
        if self._contract is None:
            web3 = Web3(Web3.HTTPProvider(self.config.rpc_url, request_kwargs={"timeout": RPC_TIMEOUT}))
            self._contract = web3.eth.contract(address=Web3.to_checksum_address(self.safe_address), abi=SAFE_ABI)
        return self._contract

    def _call(self, function: str) -> Any:
        try:
            return getattr(self._get_contract().functions, function)().call()
        except (Web3Exception, RequestException, OSError, ValueError) as exc:
            context = {
                "safe_address": self.safe_address,
                "function": function,
                "rpc_url": redact_url(self.config.rpc_url),
                "reason": type(exc).__name__,
            }
            self.logbook.error("safe contract call failed", **context)
            raise NetworkError(
                f"Failed to read {function}() from Safe {self.safe_address}",
                ErrorCode.RPC_CONNECTION_FAILED,
                context,
            ) from exc

    def nonce(self) -> int:
        """Return the Safe contract's current nonce."""

        return int(self._call("nonce"))

    get_nonce = nonce

    def get_owners(self) -> List[str]:
        return [Web3.to_checksum_address(owner) for owner in self._call("getOwners")]

    def get_threshold(self) -> int:
        return int(self._call("getThreshold"))

    def next_nonce(self) -> int:
        """First nonce not taken on-chain or by a queued proposal."""

        current = self.nonce()
        queued = self.service.multisig_transactions(
            self.safe_address,
            nonce_gte=current,
            ordering="-nonce",
            limit=1,
        )
        if queued.results:
            return max(current, int(queued.results[0].get("nonce", current)) + 1)
        return current

    # ------------------------------------------------------------------
    # Proposal
    # ------------------------------------------------------------------
    def _require_proposer(self) -> ProposerIdentity:
        if self.proposer is None:
            raise ConfigurationError(
                "A proposer key is required to sign proposals",
                ErrorCode.MISSING_ENVIRONMENT_VARIABLE,
                {"errors": ["Missing required environment variable: PROPOSER_PRIVATE_KEY"]},
            )
        return self.proposer

    def _submit(self, tx: SafeTransaction) -> str:
        proposer = self._require_proposer()
        tx_hash = safe_tx_hash(tx, self.safe_address, self.config.chain_id)
        signature = sign_safe_hash(tx_hash, proposer.private_key)
        hex_hash = hash_hex(tx_hash)
        self.service.propose(
            self.safe_address,
            tx,
            safe_tx_hash=hex_hash,
            sender=proposer.address,
            signature=signature,
        )
        self.logbook.audit(
            "safe.propose",
            safe_address=self.safe_address,
            chain_id=self.config.chain_id,
            nonce=tx.nonce,
            to=tx.to,
            value=str(tx.value),
            operation=tx.operation,
            safe_tx_hash=hex_hash,
            sender=proposer.address,
        )
        return hex_hash

    def propose_with_nonce(self, meta: MetaTransactionData, nonce: int) -> str:
        """Sign and propose ``meta`` bound to an explicit ``nonce``."""

        tx = SafeTransaction.from_meta(meta, nonce)
        self.logbook.info("proposing transaction", nonce=nonce, to=meta.to, value=meta.value)
        return self._submit(tx)

    def propose_transaction(self, meta: MetaTransactionData) -> str:
        """Propose ``meta`` at the next free nonce as seen by the service."""

        nonce = self.next_nonce()
        self.logbook.info("proposing transaction at service-assigned nonce", nonce=nonce, to=meta.to)
        return self._submit(SafeTransaction.from_meta(meta, nonce))

    def propose_sequential(self, transactions: Sequence[MetaTransactionData]) -> List[str]:
        """Propose ``transactions`` at nonces ``base``, ``base + 1``, ...

        A :class:`NonceConflictError` at index ``i`` triggers one retry at
        ``fresh + i``. After a successful retry the remaining items continue
        from ``fresh``, so nonces stay strictly increasing. If the retry would
        reuse the nonce that just conflicted, the original error is re-raised.
        """

        if not transactions:
            return []
        base = self.nonce()
        self.logbook.info("proposing batch with sequential nonces", base_nonce=base, count=len(transactions))
        hashes: List[str] = []
        for index, meta in enumerate(transactions):
            nonce = base + index
            try:
                hashes.append(self.propose_with_nonce(meta, nonce))
            except NonceConflictError as exc:
                self.logbook.warning("nonce conflict", index=index, nonce=nonce, status=exc.status_code)
                fresh = self.nonce()
                retry_nonce = fresh + index
                if fresh == nonce or retry_nonce == nonce:
                    raise
                self.logbook.info("retrying with fresh nonce", index=index, fresh_nonce=fresh, nonce=retry_nonce)
                hashes.append(self.propose_with_nonce(meta, retry_nonce))
                base = fresh
            if index < len(transactions) - 1:
                self._sleep(self.proposal_delay)
        return hashes

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_pending(self, limit: Optional[int] = None) -> TransactionPage:
        return self.service.pending_transactions(self.safe_address, self.nonce(), limit=limit)

    def get_all(self, limit: Optional[int] = None) -> TransactionPage:
        return self.service.all_transactions(self.safe_address, limit=limit)

    def get_incoming(self, limit: Optional[int] = None) -> TransactionPage:
        return self.service.incoming_transfers(self.safe_address, limit=limit)

    def get_multisig(self, limit: Optional[int] = None) -> TransactionPage:
        return self.service.multisig_transactions(self.safe_address, limit=limit)

    def get_module(self, limit: Optional[int] = None) -> TransactionPage:
        return self.service.module_transactions(self.safe_address, limit=limit)

    def get_transaction(self, safe_tx_hash: str) -> Dict[str, Any]:
        return self.service.get_transaction(safe_tx_hash)

    def safe_info(self) -> SafeInfo:
        payload = self.service.safe_info(self.safe_address)
        return SafeInfo(
            address=self.safe_address,
            nonce=self.nonce(),
            threshold=self.get_threshold(),
            owners=self.get_owners(),
            version=payload.get("version"),
        )


__all__ = ["PROPOSAL_DELAY_SECONDS", "SAFE_ABI", "SafeManager"]
