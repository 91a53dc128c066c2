"""Headless command line interface for forgesafe."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence

from rich.console import Console

from . import __version__
from .core import (
    BroadcastManager,
    ConfigLoader,
    ExecutionConfig,
    SafeManager,
    TransactionExecutor,
)
from .errors import ForgeSafeError
from .ui.render import render_page, render_safe_info
from .utils.logbook import Logbook

LIST_TYPES = ("pending", "all", "incoming", "multisig", "module")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="forgesafe", description="Propose Foundry script output to a Safe multisig")
    parser.add_argument("--version", action="store_true", help="Display version information and exit")
    parser.add_argument("--env-file", default=None, help="Path to the .env file (default: .env.safe)")
    subparsers = parser.add_subparsers(dest="command")

    # Pipeline -----------------------------------------------------------
    script = subparsers.add_parser("script", help="Run a forge script and propose its broadcast calls")
    script.add_argument("--rpc-url", required=True, help="RPC URL of the target network")
    script.add_argument("--forge-script", dest="forge_script", help="Path to the forge script")
    script.add_argument("--smart-contract", dest="smart_contract", help="Contract name inside the script")
    script.add_argument("--script", dest="script_name", help="Broadcast directory name (default: script file name)")
    script.add_argument("--env-vars", dest="env_vars", help='Environment overrides, e.g. "KEY1=v1 KEY2=v2"')
    script.add_argument("--forge-options", dest="forge_options", help="Extra options passed to forge script")
    script.add_argument("--chain-id", dest="chain_id", type=int, help="Chain id used if the script fails")
    script.add_argument("--skip-fork", action="store_true", help="Do not start a local Anvil fork")
    script.add_argument("--dry-run", action="store_true", help="Print the transactions without proposing them")

    broadcast = subparsers.add_parser("broadcast", help="Propose the calls of an existing broadcast file")
    broadcast.add_argument("--script", dest="script_name", required=True, help="Script name, e.g. Deploy")
    broadcast.add_argument("--chain-id", dest="chain_id", type=int, help="Chain id of the broadcast")
    broadcast.add_argument("--rpc-url", help="RPC URL used to derive the chain id")
    broadcast.add_argument("--dry-run", action="store_true")

    propose = subparsers.add_parser("propose", help="Propose a single transaction")
    propose.add_argument("--to", required=True)
    propose.add_argument("--value", default="0", help="Value in wei")
    propose.add_argument("--data", default="0x")
    propose.add_argument("--operation", choices=("call", "delegatecall"), default="call")
    propose.add_argument("--dry-run", action="store_true")

    # Queries ------------------------------------------------------------
    listing = subparsers.add_parser("list", help="List Safe transactions")
    listing.add_argument("--type", dest="list_type", choices=LIST_TYPES, default="pending")
    listing.add_argument("--limit", type=int, default=None)
    listing.add_argument("--json", action="store_true", help="Emit JSON instead of a table")

    subparsers.add_parser("nonce", help="Show the Safe's current nonce")
    info = subparsers.add_parser("info", help="Show Safe owners, threshold and nonce")
    info.add_argument("--json", action="store_true", help="Emit JSON instead of a table")
    subparsers.add_parser("scripts", help="List scripts and chains found under broadcast/")
    return parser


def _loader(args: argparse.Namespace, logbook: Logbook) -> ConfigLoader:
    env_file = Path(args.env_file) if args.env_file else None
    return ConfigLoader(env_file=env_file, logbook=logbook)


def _safe_manager(args: argparse.Namespace, logbook: Logbook) -> SafeManager:
    config, proposer = _loader(args, logbook).validate()
    return SafeManager(config, proposer, logbook=logbook)


def _safe_reader(args: argparse.Namespace, logbook: Logbook) -> SafeManager:
    """Safe manager for queries; needs no proposer key."""

    return SafeManager(_loader(args, logbook).safe_config(), None, logbook=logbook)


def _executor(args: argparse.Namespace, logbook: Logbook) -> TransactionExecutor:
    safe = None if getattr(args, "dry_run", False) else _safe_manager(args, logbook)
    return TransactionExecutor(safe, logbook=logbook)


def _handle_script(args: argparse.Namespace, logbook: Logbook) -> Any:
    config = ExecutionConfig(
        rpc_url=args.rpc_url,
        script_path=args.forge_script,
        contract_name=args.smart_contract,
        script_name=args.script_name,
        forge_options=args.forge_options,
        env_vars=args.env_vars,
        chain_id=args.chain_id,
        dry_run=args.dry_run,
        skip_fork=args.skip_fork,
    )
    hashes = _executor(args, logbook).execute_from_script(config)
    return {"dry_run": args.dry_run, "hashes": hashes}


def _handle_broadcast(args: argparse.Namespace, logbook: Logbook) -> Any:
    config = ExecutionConfig(
        rpc_url=args.rpc_url,
        script_name=args.script_name,
        chain_id=args.chain_id,
        dry_run=args.dry_run,
    )
    hashes = _executor(args, logbook).execute_from_broadcast(config)
    return {"dry_run": args.dry_run, "hashes": hashes}


def _handle_propose(args: argparse.Namespace, logbook: Logbook) -> Any:
    safe_tx_hash = _executor(args, logbook).execute_single(
        args.to,
        value=args.value,
        data=args.data,
        operation=args.operation,
        dry_run=args.dry_run,
    )
    return {"dry_run": args.dry_run, "hash": safe_tx_hash}


def _handle_list(args: argparse.Namespace, logbook: Logbook) -> Any:
    safe = _safe_reader(args, logbook)
    fetchers: Dict[str, Callable[..., Any]] = {
        "pending": safe.get_pending,
        "all": safe.get_all,
        "incoming": safe.get_incoming,
        "multisig": safe.get_multisig,
        "module": safe.get_module,
    }
    page = fetchers[args.list_type](limit=args.limit)
    if args.json:
        return page.as_dict()
    render_page(Console(), page, f"{args.list_type.capitalize()} transactions")
    return None


def _handle_nonce(args: argparse.Namespace, logbook: Logbook) -> Any:
    safe = _safe_reader(args, logbook)
    return {"safe_address": safe.safe_address, "nonce": safe.nonce()}


def _handle_info(args: argparse.Namespace, logbook: Logbook) -> Any:
    info = _safe_reader(args, logbook).safe_info()
    if not args.json:
        render_safe_info(Console(), info)
        return None
    return {
        "address": info.address,
        "nonce": info.nonce,
        "threshold": info.threshold,
        "owners": info.owners,
        "version": info.version,
    }


def _handle_scripts(args: argparse.Namespace, logbook: Logbook) -> Any:
    manager = BroadcastManager(logbook=logbook)
    return {name: manager.available_chains(name) for name in manager.available_scripts()}


HANDLERS: Dict[str, Callable[[argparse.Namespace, Logbook], Any]] = {
    "script": _handle_script,
    "broadcast": _handle_broadcast,
    "propose": _handle_propose,
    "list": _handle_list,
    "nonce": _handle_nonce,
    "info": _handle_info,
    "scripts": _handle_scripts,
}


def main(argv: Optional[Sequence[str]] = None, *, logbook: Optional[Logbook] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.version:
        print(f"forgesafe {__version__}")
        return 0
    if args.command is None:
        parser.print_help()
        return 1
    log = logbook or Logbook()
    try:
        result = HANDLERS[args.command](args, log)
    except ForgeSafeError as exc:
        log.error(
            "command failed",
            command=args.command,
            code=exc.code.value,
            description=exc.describe(),
            context=exc.context,
        )
        sys.stderr.write(f"error: [{exc.code.value}] {exc.message}\n")
        return 1
    if result is not None:
        json.dump(result, sys.stdout, indent=2, default=str)
        sys.stdout.write("\n")
    return 0


__all__ = ["main"]
