"""Environment-driven configuration for the Safe proposer."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import keyring
from dotenv import dotenv_values
from eth_account import Account
from keyring.errors import KeyringError

from ..errors import ConfigurationError, ErrorCode, ValidationError
from ..utils.logbook import Logbook
from ..utils.validation import (
    KNOWN_CHAIN_IDS,
    redact_url,
    validate_address,
    validate_chain_id,
    validate_private_key,
    validate_rpc_url,
)

ENV_FILE_DEFAULT = Path(".env.safe")
KEYRING_SERVICE_ENV = "FORGESAFE_KEYRING_SERVICE"
DEFAULT_KEYRING_SERVICE = "forgesafe"
DEFAULT_CHAIN_ID = 11155111

RPC_URL_ENV = "RPC_URL"
CHAIN_ID_ENV = "CHAIN_ID"
SAFE_ADDRESS_ENV = "SAFE_ADDRESS"
SAFE_API_KEY_ENV = "SAFE_API_KEY"
PROPOSER_ADDRESS_ENV = "PROPOSER_ADDRESS"
PROPOSER_KEY_ENV = "PROPOSER_PRIVATE_KEY"
TX_SERVICE_URL_ENV = "SAFE_TX_SERVICE_URL"

SECRET_KEYS = (SAFE_API_KEY_ENV, PROPOSER_KEY_ENV)


@dataclass(frozen=True)
class SafeConfig:
    rpc_url: str = field(repr=False)
    chain_id: int
    safe_address: str
    api_key: str = field(repr=False)
    tx_service_url: Optional[str] = None


@dataclass(frozen=True)
class ProposerIdentity:
    """The single Safe owner that signs and submits proposals."""

    address: str
    private_key: str = field(repr=False)


class ConfigLoader:
    """Resolve settings from the environment, ``.env.safe`` and the keyring."""

    def __init__(
        self,
        *,
        env_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        logbook: Optional[Logbook] = None,
        keyring_service: Optional[str] = None,
    ) -> None:
        self.env_file = env_file if env_file is not None else ENV_FILE_DEFAULT
        self.logbook = logbook or Logbook()
        base = dict(os.environ if environ is None else environ)
        self._values: Dict[str, str] = {}
        if self.env_file.exists():
            for key, value in dotenv_values(self.env_file).items():
                if value is not None:
                    self._values[key] = value
        # real environment wins over the file
        self._values.update(base)
        self.keyring_service = keyring_service or self._values.get(KEYRING_SERVICE_ENV, DEFAULT_KEYRING_SERVICE)

    # -- lookups ----------------------------------------------------------
    def get(self, key: str) -> Optional[str]:
        value = self._values.get(key)
        if value is None:
            return None
        value = value.strip()
        return value or None

    def secret(self, key: str) -> Optional[str]:
        value = self.get(key)
        if value is not None:
            return value
        try:
            stored = keyring.get_password(self.keyring_service, key)
        except KeyringError as exc:
            self.logbook.debug("keyring lookup failed", key=key, error=str(exc))
            return None
        if stored:
            self.logbook.debug("secret resolved from keyring", key=key)
            return stored.strip() or None
        return None

    def environment(self) -> Dict[str, str]:
        return dict(self._values)

    # -- sections ---------------------------------------------------------
    def _check_safe(self, errors: List[str]) -> Optional[SafeConfig]:
        rpc_url = self.get(RPC_URL_ENV)
        safe_address = self.get(SAFE_ADDRESS_ENV)
        api_key = self.secret(SAFE_API_KEY_ENV)
        raw_chain = self.get(CHAIN_ID_ENV) or str(DEFAULT_CHAIN_ID)

        for key, value in ((RPC_URL_ENV, rpc_url), (SAFE_ADDRESS_ENV, safe_address), (SAFE_API_KEY_ENV, api_key)):
            if value is None:
                errors.append(f"Missing required environment variable: {key}")

        chain_id: Optional[int] = None
        checksum: Optional[str] = None
        try:
            chain_id = validate_chain_id(raw_chain, CHAIN_ID_ENV)
        except ValidationError as exc:
            errors.append(f"Invalid {CHAIN_ID_ENV}: {exc.message}")
        if rpc_url is not None:
            try:
                validate_rpc_url(rpc_url, RPC_URL_ENV)
            except ValidationError as exc:
                errors.append(f"Invalid {RPC_URL_ENV}: {exc.message}")
                rpc_url = None
        if safe_address is not None:
            try:
                checksum = validate_address(safe_address, SAFE_ADDRESS_ENV)
            except ValidationError as exc:
                errors.append(f"Invalid {SAFE_ADDRESS_ENV}: {exc.message}")

        if chain_id is not None and chain_id not in KNOWN_CHAIN_IDS:
            self.logbook.warning(
                "chain id is not in the list of known networks",
                chain_id=chain_id,
                known=list(KNOWN_CHAIN_IDS),
            )
        if rpc_url is None or checksum is None or api_key is None or chain_id is None:
            return None
        return SafeConfig(
            rpc_url=rpc_url,
            chain_id=chain_id,
            safe_address=checksum,
            api_key=api_key,
            tx_service_url=self.get(TX_SERVICE_URL_ENV),
        )

    def _check_proposer(self, errors: List[str]) -> Optional[ProposerIdentity]:
        raw_key = self.secret(PROPOSER_KEY_ENV)
        if raw_key is None:
            errors.append(f"Missing required environment variable: {PROPOSER_KEY_ENV}")
            return None
        try:
            private_key = validate_private_key(raw_key, PROPOSER_KEY_ENV)
        except ValidationError as exc:
            errors.append(f"Invalid {PROPOSER_KEY_ENV}: {exc.message}")
            return None
        address = Account.from_key(private_key).address

        declared = self.get(PROPOSER_ADDRESS_ENV)
        if declared is not None:
            try:
                declared_checksum = validate_address(declared, PROPOSER_ADDRESS_ENV)
            except ValidationError as exc:
                errors.append(f"Invalid {PROPOSER_ADDRESS_ENV}: {exc.message}")
                return None
            if declared_checksum != address:
                errors.append(f"{PROPOSER_ADDRESS_ENV} does not match the address derived from {PROPOSER_KEY_ENV}")
                return None
        return ProposerIdentity(address=address, private_key=private_key)

    def _fail(self, section: str, errors: List[str]) -> ConfigurationError:
        code = ErrorCode.MISSING_ENVIRONMENT_VARIABLE if all(e.startswith("Missing") for e in errors) else ErrorCode.INVALID_CONFIGURATION
        self.logbook.error(f"{section} validation failed", errors=errors)
        return ConfigurationError(f"{section} validation failed: {', '.join(errors)}", code, {"errors": errors})

    def safe_config(self) -> SafeConfig:
        errors: List[str] = []
        config = self._check_safe(errors)
        if errors or config is None:
            raise self._fail("Safe configuration", errors)
        self.logbook.info(
            "Safe configuration validated",
            chain_id=config.chain_id,
            rpc_url=redact_url(config.rpc_url),
            safe_address=config.safe_address,
        )
        return config

    def proposer(self) -> ProposerIdentity:
        errors: List[str] = []
        identity = self._check_proposer(errors)
        if errors or identity is None:
            raise self._fail("Proposer configuration", errors)
        self.logbook.info("Proposer configuration validated", address=identity.address)
        return identity

    def validate(self) -> Tuple[SafeConfig, ProposerIdentity]:
        """Check every setting at once and report all problems together."""

        errors: List[str] = []
        config = self._check_safe(errors)
        identity = self._check_proposer(errors)
        if errors or config is None or identity is None:
            raise self._fail("Environment", errors)
        self.logbook.info(
            "Environment validation completed",
            chain_id=config.chain_id,
            safe_address=config.safe_address,
            proposer=identity.address,
        )
        return config, identity


def load_safe_config(*, env_file: Optional[Path] = None, logbook: Optional[Logbook] = None) -> SafeConfig:
    return ConfigLoader(env_file=env_file, logbook=logbook).safe_config()


def load_proposer(*, env_file: Optional[Path] = None, logbook: Optional[Logbook] = None) -> ProposerIdentity:
    return ConfigLoader(env_file=env_file, logbook=logbook).proposer()


def validate_environment(
    *,
    env_file: Optional[Path] = None,
    logbook: Optional[Logbook] = None,
) -> Tuple[SafeConfig, ProposerIdentity]:
    return ConfigLoader(env_file=env_file, logbook=logbook).validate()


__all__ = [
    "ConfigLoader",
    "DEFAULT_CHAIN_ID",
    "ProposerIdentity",
    "SafeConfig",
    "load_proposer",
    "load_safe_config",
    "validate_environment",
]
