"""Rich renderers for transaction batches and Safe state."""

from __future__ import annotations

import sys
from typing import Iterable, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..models import SafeInfo, TransactionInput, TransactionPage

DATA_PREVIEW = 42


def stderr_console() -> Console:
    return Console(file=sys.stderr, highlight=False)


def truncate(data: Optional[str], max_length: int = DATA_PREVIEW) -> str:
    if not data or len(data) <= max_length:
        return data or "None"
    return data[:max_length] + "..."


def transactions_table(transactions: Sequence[TransactionInput], title: str = "Transactions to be executed") -> Table:
    table = Table(title=title, show_lines=True)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("To", style="green")
    table.add_column("Value (wei)", style="magenta", justify="right")
    table.add_column("Data", style="yellow")
    table.add_column("Operation", style="cyan")
    for index, tx in enumerate(transactions, start=1):
        table.add_row(str(index), tx.to, tx.value, truncate(tx.data), tx.operation or "call")
    return table


def render_transactions(console: Console, transactions: Sequence[TransactionInput], *, dry_run: bool = False) -> None:
    title = "Dry run: transactions that would be proposed" if dry_run else "Transactions to be proposed"
    console.print(transactions_table(transactions, title))


def render_hashes(console: Console, hashes: Iterable[str], *, fallback: bool = False) -> None:
    lines = [f"{index}. {value}" for index, value in enumerate(hashes, start=1)]
    title = "Safe transaction hashes (individual proposals)" if fallback else "Safe transaction hashes"
    console.print(Panel("\n".join(lines) or "None", title=title, border_style="cyan", title_align="left"))


def render_safe_info(console: Console, info: SafeInfo) -> None:
    table = Table(title=f"Safe overview: {info.address}")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    table.add_row("Nonce", str(info.nonce))
    table.add_row("Threshold", f"{info.threshold} of {len(info.owners)}")
    table.add_row("Owners", "\n".join(info.owners) or "None")
    table.add_row("Version", info.version or "unknown")
    console.print(table)


def render_page(console: Console, page: TransactionPage, title: str) -> None:
    table = Table(title=f"{title} ({page.count})", show_header=True, header_style="bold")
    table.add_column("Nonce", style="cyan", justify="right")
    table.add_column("Safe tx hash", style="green")
    table.add_column("To", style="magenta")
    table.add_column("Value", justify="right")
    table.add_column("Confirmations", justify="right")
    table.add_column("Executed", style="yellow")
    for item in page.results:
        confirmations = item.get("confirmations")
        confirmed = f"{len(confirmations)}/{item.get('confirmationsRequired', '?')}" if isinstance(confirmations, list) else "-"
        table.add_row(
            str(item.get("nonce", "-")),
            str(item.get("safeTxHash") or item.get("transactionHash") or item.get("txHash") or "-"),
            str(item.get("to", "-")),
            str(item.get("value", "0")),
            confirmed,
            str(item.get("isExecuted", "-")),
        )
    console.print(table)


__all__ = [
    "render_hashes",
    "render_page",
    "render_safe_info",
    "render_transactions",
    "stderr_console",
    "transactions_table",
    "truncate",
]
