"""Console rendering for forgesafe."""

from .render import (
    render_hashes,
    render_page,
    render_safe_info,
    render_transactions,
    stderr_console,
)

__all__ = [
    "render_hashes",
    "render_page",
    "render_safe_info",
    "render_transactions",
    "stderr_console",
]
