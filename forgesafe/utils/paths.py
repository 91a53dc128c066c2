"""Filesystem path helpers for forgesafe state."""

from __future__ import annotations

import os
from pathlib import Path

BROADCAST_DIRNAME = "broadcast"


def state_dir() -> Path:
    """Return the directory used for logs and the audit trail.

    The location defaults to ``~/.forgesafe`` but can be overridden via the
    ``FORGESAFE_STATE_DIR`` environment variable. The path is expanded and
    resolved so callers always receive an absolute location.
    """

    override = os.environ.get("FORGESAFE_STATE_DIR")
    if override:
        return Path(override).expanduser().resolve()
    return Path.home() / ".forgesafe"


def project_root() -> Path:
    """Foundry project root; broadcast artifacts live beneath it."""

    override = os.environ.get("FORGESAFE_PROJECT_ROOT")
    if override:
        return Path(override).expanduser().resolve()
    return Path.cwd()


def broadcast_dir(root: Path | None = None) -> Path:
    return (root or project_root()) / BROADCAST_DIRNAME


__all__ = ["BROADCAST_DIRNAME", "broadcast_dir", "project_root", "state_dir"]
