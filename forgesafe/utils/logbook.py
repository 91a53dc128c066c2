"""Rotating structured logger with a tamper-evident audit trail.

Every manager receives a :class:`Logbook` instance instead of reaching for a
module-level logger, so tests can point logs at a temporary directory.
Log lines are plain text with a JSON tail; audit records are appended to
``audit.jsonl`` as hash-chained, Ed25519-signed JSON lines.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from .crypto_tools import load_or_create_key, public_key_b64, sign_digest
from .paths import state_dir

LOGGER_NAME = "forgesafe"
LOG_FORMAT = "%(asctime)s - forgesafe - %(levelname)s - %(message)s"
SENSITIVE_KEYS = {"private_key", "privatekey", "api_key", "apikey", "secret", "password"}

_LEVELS = {
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def level_from_env(default: int = logging.INFO) -> int:
    raw = (os.getenv("LOG_LEVEL") or "").strip().upper()
    return _LEVELS.get(raw, default)


def _configure_logger(log_file: Path, level: int, console: bool) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers:
        if isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == log_file:
            logger.setLevel(level)
            return logger

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_file.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)
    file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    if console:
        # stdout is reserved for command output
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def redact(fields: Dict[str, Any]) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for key, value in fields.items():
        if key.lower().replace("-", "_") in SENSITIVE_KEYS:
            cleaned[key] = "***"
        elif isinstance(value, dict):
            cleaned[key] = redact(value)
        else:
            cleaned[key] = value
    return cleaned


class Logbook:
    """Structured logging context passed down to every forgesafe component."""

    def __init__(
        self,
        base_path: Optional[Path] = None,
        *,
        level: Optional[int] = None,
        console: bool = True,
    ) -> None:
        self.base_path = base_path or state_dir()
        self.log_file = self.base_path / "logs" / "forgesafe.log"
        self.audit_file = self.base_path / "audit.jsonl"
        self.audit_key = self.base_path / "audit_ed25519.pem"
        self._logger = _configure_logger(self.log_file, level if level is not None else level_from_env(), console)

    # -- plain logging ----------------------------------------------------
    def _emit(self, level: int, message: str, fields: Dict[str, Any]) -> None:
        if fields:
            message = f"{message} {json.dumps(redact(fields), sort_keys=True, default=str)}"
        self._logger.log(level, message)

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit(logging.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit(logging.ERROR, message, fields)

    # -- audit trail ------------------------------------------------------
    def _last_hash(self) -> Optional[str]:
        if not self.audit_file.exists():
            return None
        lines = self.audit_file.read_text(encoding="utf-8").strip().splitlines()
        if not lines:
            return None
        try:
            return json.loads(lines[-1]).get("hash")
        except json.JSONDecodeError:
            return None

    def audit(self, action: str, *, ok: bool = True, **fields: Any) -> Dict[str, Any]:
        """Log ``action`` and append a signed, chained record to the audit trail."""

        record = {"action": action, "ok": bool(ok), **redact(fields)}
        self._emit(logging.INFO if ok else logging.ERROR, action, record)

        key = load_or_create_key(self.audit_key)
        entry: Dict[str, Any] = {
            "ts": time.time(),
            "prev": self._last_hash(),
            "record": record,
        }
        canonical = json.dumps(entry, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")
        digest = hashlib.sha256(canonical).digest()
        entry["hash"] = digest.hex()
        entry["signature"] = sign_digest(key, digest)
        entry["public_key"] = public_key_b64(key)
        self.audit_file.parent.mkdir(parents=True, exist_ok=True)
        with self.audit_file.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, sort_keys=True, default=str) + "\n")
        return entry


__all__ = ["LOGGER_NAME", "Logbook", "level_from_env", "redact"]
