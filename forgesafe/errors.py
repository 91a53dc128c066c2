"""Error taxonomy shared by every forgesafe subsystem."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    # configuration
    MISSING_ENVIRONMENT_VARIABLE = "MISSING_ENVIRONMENT_VARIABLE"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    INVALID_RPC_URL = "INVALID_RPC_URL"
    INVALID_SAFE_ADDRESS = "INVALID_SAFE_ADDRESS"
    INVALID_PRIVATE_KEY = "INVALID_PRIVATE_KEY"
    # network
    RPC_CONNECTION_FAILED = "RPC_CONNECTION_FAILED"
    CHAIN_ID_MISMATCH = "CHAIN_ID_MISMATCH"
    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    # safe
    SAFE_TRANSACTION_FAILED = "SAFE_TRANSACTION_FAILED"
    NONCE_CONFLICT = "NONCE_CONFLICT"
    TRANSACTION_PROPOSAL_FAILED = "TRANSACTION_PROPOSAL_FAILED"
    # filesystem
    BROADCAST_FILE_NOT_FOUND = "BROADCAST_FILE_NOT_FOUND"
    INVALID_BROADCAST_FILE = "INVALID_BROADCAST_FILE"
    FILE_PERMISSION_ERROR = "FILE_PERMISSION_ERROR"
    # foundry
    FOUNDRY_NOT_FOUND = "FOUNDRY_NOT_FOUND"
    ANVIL_START_FAILED = "ANVIL_START_FAILED"
    FORK_STARTUP_TIMEOUT = "FORK_STARTUP_TIMEOUT"
    FORGE_SCRIPT_FAILED = "FORGE_SCRIPT_FAILED"
    # validation
    INVALID_TRANSACTION_DATA = "INVALID_TRANSACTION_DATA"
    INVALID_HEX_VALUE = "INVALID_HEX_VALUE"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    # general
    OPERATION_TIMEOUT = "OPERATION_TIMEOUT"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


ERROR_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.MISSING_ENVIRONMENT_VARIABLE: "Required environment variable is missing",
    ErrorCode.INVALID_CONFIGURATION: "Invalid configuration provided",
    ErrorCode.INVALID_RPC_URL: "Invalid or unreachable RPC URL",
    ErrorCode.INVALID_SAFE_ADDRESS: "Invalid Safe multisig address",
    ErrorCode.INVALID_PRIVATE_KEY: "Invalid private key format",
    ErrorCode.RPC_CONNECTION_FAILED: "Failed to connect to RPC endpoint",
    ErrorCode.CHAIN_ID_MISMATCH: "Chain ID mismatch between configuration and network",
    ErrorCode.NETWORK_TIMEOUT: "Network operation timed out",
    ErrorCode.SAFE_TRANSACTION_FAILED: "Safe transaction execution failed",
    ErrorCode.NONCE_CONFLICT: "Transaction nonce conflict detected",
    ErrorCode.TRANSACTION_PROPOSAL_FAILED: "Failed to propose transaction to Safe",
    ErrorCode.BROADCAST_FILE_NOT_FOUND: "Foundry broadcast file not found",
    ErrorCode.INVALID_BROADCAST_FILE: "Invalid or corrupted broadcast file",
    ErrorCode.FILE_PERMISSION_ERROR: "File permission denied",
    ErrorCode.FOUNDRY_NOT_FOUND: "Foundry toolkit not found or not installed",
    ErrorCode.ANVIL_START_FAILED: "Failed to start Anvil fork",
    ErrorCode.FORK_STARTUP_TIMEOUT: "Anvil fork did not start in time",
    ErrorCode.FORGE_SCRIPT_FAILED: "Forge script execution failed",
    ErrorCode.INVALID_TRANSACTION_DATA: "Invalid transaction data format",
    ErrorCode.INVALID_HEX_VALUE: "Invalid hexadecimal value",
    ErrorCode.INVALID_ADDRESS: "Invalid Ethereum address",
    ErrorCode.OPERATION_TIMEOUT: "Operation timed out",
    ErrorCode.UNKNOWN_ERROR: "An unknown error occurred",
}


class ForgeSafeError(Exception):
    """Base class carrying an :class:`ErrorCode` and diagnostic context."""

    default_code = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context: Dict[str, Any] = dict(context or {})
        self.timestamp = datetime.now(timezone.utc)

    def describe(self) -> str:
        return ERROR_MESSAGES.get(self.code, ERROR_MESSAGES[ErrorCode.UNKNOWN_ERROR])

    def as_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "code": self.code.value,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class ConfigurationError(ForgeSafeError):
    default_code = ErrorCode.INVALID_CONFIGURATION


class ValidationError(ForgeSafeError):
    default_code = ErrorCode.INVALID_TRANSACTION_DATA

    @property
    def field(self) -> Optional[str]:
        return self.context.get("field")


class NetworkError(ForgeSafeError):
    default_code = ErrorCode.RPC_CONNECTION_FAILED


class SafeTransactionError(ForgeSafeError):
    default_code = ErrorCode.SAFE_TRANSACTION_FAILED

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        *,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, code, context)
        self.status_code = status_code


class NonceConflictError(SafeTransactionError):
    """The transaction service rejected a proposal as unprocessable (nonce already used)."""

    default_code = ErrorCode.NONCE_CONFLICT


class FileSystemError(ForgeSafeError):
    default_code = ErrorCode.FILE_PERMISSION_ERROR


class BroadcastNotFoundError(FileSystemError):
    default_code = ErrorCode.BROADCAST_FILE_NOT_FOUND


class InvalidArtifactError(FileSystemError):
    default_code = ErrorCode.INVALID_BROADCAST_FILE


class FoundryError(ForgeSafeError):
    default_code = ErrorCode.FORGE_SCRIPT_FAILED


class ForkStartupError(FoundryError):
    default_code = ErrorCode.ANVIL_START_FAILED


class ForkStartupTimeoutError(ForkStartupError):
    default_code = ErrorCode.FORK_STARTUP_TIMEOUT


class ScriptExecutionError(FoundryError):
    default_code = ErrorCode.FORGE_SCRIPT_FAILED

    def __init__(
        self,
        message: str,
        *,
        exit_code: Optional[int],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        merged = {"exit_code": exit_code, **(context or {})}
        super().__init__(message, ErrorCode.FORGE_SCRIPT_FAILED, merged)
        self.exit_code = exit_code


__all__ = [
    "ERROR_MESSAGES",
    "BroadcastNotFoundError",
    "ConfigurationError",
    "ErrorCode",
    "FileSystemError",
    "ForgeSafeError",
    "ForkStartupError",
    "ForkStartupTimeoutError",
    "FoundryError",
    "InvalidArtifactError",
    "NetworkError",
    "NonceConflictError",
    "SafeTransactionError",
    "ScriptExecutionError",
    "ValidationError",
]
