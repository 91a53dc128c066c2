"""HTTP client for the Safe Transaction Service."""

from __future__ import annotations

from typing import Any, Dict, Optional

import requests
from web3 import Web3

from ..errors import ConfigurationError, ErrorCode, NetworkError, NonceConflictError, SafeTransactionError
from ..models import SafeTransaction, TransactionPage
from ..utils.logbook import Logbook

SAFE_API_BASE = "https://api.safe.global/tx-service"
DEFAULT_TIMEOUT = 30
ORIGIN = "forgesafe"
UNPROCESSABLE = 422

NETWORK_SLUGS: Dict[int, str] = {
    1: "eth",
    10: "oeth",
    100: "gno",
    137: "pol",
    8453: "base",
    42161: "arb1",
    421614: "arb-sep",
    11155111: "sep",
}


def service_url_for(chain_id: int, override: Optional[str] = None) -> str:
    if override:
        return override.rstrip("/")
    slug = NETWORK_SLUGS.get(int(chain_id))
    if slug is None:
        raise ConfigurationError(
            f"No Safe Transaction Service known for chain {chain_id}; set SAFE_TX_SERVICE_URL",
            ErrorCode.INVALID_CONFIGURATION,
            {"chain_id": chain_id},
        )
    return f"{SAFE_API_BASE}/{slug}"


class SafeTransactionServiceClient:
    """Thin wrapper over the ``/api/v1`` endpoints used by the proposer.

    HTTP 422 responses become :class:`NonceConflictError`; every other
    failure status becomes :class:`SafeTransactionError` and transport
    failures become :class:`NetworkError`.
    """

    def __init__(
        self,
        chain_id: int,
        api_key: Optional[str],
        *,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        logbook: Optional[Logbook] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.chain_id = int(chain_id)
        self.base_url = service_url_for(self.chain_id, base_url)
        self.logbook = logbook or Logbook()
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json", "Content-Type": "application/json"})
        if api_key:
            self.session.headers["Authorization"] = f"Bearer {api_key}"

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/v1/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
        proposal: bool = False,
    ) -> Any:
        context = {"method": method, "path": path}
        try:
            response = self.session.request(
                method,
                self._url(path),
                params=params,
                json=payload,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise NetworkError(
                f"Safe Transaction Service timed out: {method} {path}",
                ErrorCode.NETWORK_TIMEOUT,
                context,
            ) from exc
        except requests.RequestException as exc:
            raise NetworkError(
                f"Safe Transaction Service unreachable: {exc.__class__.__name__}",
                ErrorCode.RPC_CONNECTION_FAILED,
                context,
            ) from exc

        status = response.status_code
        if status >= 400:
            body = (response.text or "")[:500]
            self.logbook.debug("safe service error response", status=status, body=body, **context)
            if status == UNPROCESSABLE:
                raise NonceConflictError(
                    f"Unprocessable Content: {body}",
                    context={**context, "response": body},
                    status_code=status,
                )
            code = ErrorCode.TRANSACTION_PROPOSAL_FAILED if proposal else ErrorCode.SAFE_TRANSACTION_FAILED
            raise SafeTransactionError(
                f"Safe Transaction Service returned HTTP {status}",
                code,
                {**context, "response": body},
                status_code=status,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise SafeTransactionError(
                "Safe Transaction Service returned invalid JSON",
                ErrorCode.SAFE_TRANSACTION_FAILED,
                context,
                status_code=status,
            ) from exc

    def _page(self, path: str, params: Optional[Dict[str, Any]] = None) -> TransactionPage:
        payload = self._request("GET", path, params={k: v for k, v in (params or {}).items() if v is not None})
        return TransactionPage.from_json(payload or {})

    @staticmethod
    def _safe(safe_address: str) -> str:
        return Web3.to_checksum_address(safe_address)

    # -- reads ------------------------------------------------------------
    def safe_info(self, safe_address: str) -> Dict[str, Any]:
        return self._request("GET", f"safes/{self._safe(safe_address)}/") or {}

    def multisig_transactions(
        self,
        safe_address: str,
        *,
        executed: Optional[bool] = None,
        nonce_gte: Optional[int] = None,
        ordering: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> TransactionPage:
        params: Dict[str, Any] = {
            "executed": None if executed is None else str(executed).lower(),
            "nonce__gte": nonce_gte,
            "ordering": ordering,
            "limit": limit,
        }
        return self._page(f"safes/{self._safe(safe_address)}/multisig-transactions/", params)

    def pending_transactions(self, safe_address: str, current_nonce: int, limit: Optional[int] = None) -> TransactionPage:
        return self.multisig_transactions(
            safe_address,
            executed=False,
            nonce_gte=current_nonce,
            ordering="nonce",
            limit=limit,
        )

    def all_transactions(self, safe_address: str, limit: Optional[int] = None) -> TransactionPage:
        return self._page(f"safes/{self._safe(safe_address)}/all-transactions/", {"limit": limit})

    def incoming_transfers(self, safe_address: str, limit: Optional[int] = None) -> TransactionPage:
        return self._page(f"safes/{self._safe(safe_address)}/incoming-transfers/", {"limit": limit})

    def module_transactions(self, safe_address: str, limit: Optional[int] = None) -> TransactionPage:
        return self._page(f"safes/{self._safe(safe_address)}/module-transactions/", {"limit": limit})

    def get_transaction(self, safe_tx_hash: str) -> Dict[str, Any]:
        return self._request("GET", f"multisig-transactions/{safe_tx_hash}/") or {}

    # -- writes -----------------------------------------------------------
    def propose(
        self,
        safe_address: str,
        tx: SafeTransaction,
        *,
        safe_tx_hash: str,
        sender: str,
        signature: str,
    ) -> None:
        payload = {
            **tx.service_payload(),
            "contractTransactionHash": safe_tx_hash,
            "sender": Web3.to_checksum_address(sender),
            "signature": signature,
            "origin": ORIGIN,
        }
        self._request(
            "POST",
            f"safes/{self._safe(safe_address)}/multisig-transactions/",
            payload=payload,
            proposal=True,
        )


__all__ = ["NETWORK_SLUGS", "SafeTransactionServiceClient", "service_url_for"]
