"""Core managers for the forgesafe proposer."""

from .broadcast_manager import BroadcastManager
from .config import ConfigLoader, ProposerIdentity, SafeConfig, load_proposer, load_safe_config, validate_environment
from .executor import ExecutionConfig, TransactionExecutor
from .fork_manager import ForkConfig, ForkManager, get_forge_rpc_url, should_start_fork
from .safe_manager import SafeManager
from .script_runner import ScriptOutcome, ScriptRunner, resolve_chain_id
from .tx_service import SafeTransactionServiceClient

__all__ = [
    "BroadcastManager",
    "ConfigLoader",
    "ExecutionConfig",
    "ForkConfig",
    "ForkManager",
    "ProposerIdentity",
    "SafeConfig",
    "SafeManager",
    "SafeTransactionServiceClient",
    "ScriptOutcome",
    "ScriptRunner",
    "TransactionExecutor",
    "get_forge_rpc_url",
    "load_proposer",
    "load_safe_config",
    "resolve_chain_id",
    "should_start_fork",
    "validate_environment",
]
