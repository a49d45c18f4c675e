"""
Central logging for uptimesync.

- Console handler on stderr (level from config, INFO by default)
- Timed rotated file handler: DEBUG (logs/app.log, daily rotation)
- Action-based file handler: DEBUG (logs/YYYY-MM-DD/<action>_<run_id>.log)
- Secret redaction: masks tokens/passwords in both msg and % args
- UTC timestamps in ISO-8601

Library modules log through ``logging.getLogger("usync.<area>")``; those
records propagate to the ``usync`` base logger configured here.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

BASE_LOGGER = "usync"

_CONTEXT_KEYS = ("run_id", "action", "state")


class MaskSecretsFilter(logging.Filter):
    """
    Redact common secrets (bearer tokens, API tokens, passwords) from log records.
    """

    _patterns = [
        re.compile(r"(Authorization:\s*Bearer\s+)([A-Za-z0-9._-]+)", re.IGNORECASE),
        re.compile(r"(Bearer\s+)([A-Za-z0-9._-]+)", re.IGNORECASE),
        re.compile(r"(['\"]?auth_password['\"]?\s*[=:]\s*['\"]?)([^,'\"\s}]+)", re.IGNORECASE),
        re.compile(r"(password\s*[=:]\s*)([^,\s]+)", re.IGNORECASE),
        re.compile(r"(\btoken\s*[=:]\s*)([A-Za-z0-9._-]+)", re.IGNORECASE),
    ]

    @staticmethod
    def _mask(text: str) -> str:
        masked = text
        for pat in MaskSecretsFilter._patterns:
            masked = pat.sub(r"\1***REDACTED***", masked)
        return masked

    def filter(self, record: logging.LogRecord) -> bool:
        # Render %-args first so secrets inside arguments are masked too
        if record.args:
            try:
                record.msg = record.getMessage()
                record.args = None
            except (TypeError, ValueError):
                pass
        if isinstance(record.msg, str):
            record.msg = self._mask(record.msg)
        return True


class _ContextDefaults(logging.Filter):
    """Fill context fields for records that did not come through the adapter."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key in _CONTEXT_KEYS:
            if not hasattr(record, key):
                setattr(record, key, "-")
        return True


def _ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def _utc_formatter(fmt: str) -> logging.Formatter:
    f = logging.Formatter(fmt=fmt, datefmt="%Y-%m-%dT%H:%M:%SZ")
    # Force UTC
    f.converter = time.gmtime  # type: ignore[attr-defined]
    return f


def _level(name: str, fallback: int) -> int:
    return getattr(logging, str(name).upper(), fallback)


def _decorate(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(_ContextDefaults())
    handler.addFilter(MaskSecretsFilter())
    return handler


def _ensure_single_console_handler(base_logger: logging.Logger, *, level: int, formatter: logging.Formatter) -> None:
    """
    Make sure there is exactly ONE StreamHandler bound to sys.stderr
    (pytest may close/replace stdio between tests; also avoid duplicates).
    """
    for h in list(base_logger.handlers):
        if type(h) is logging.StreamHandler:
            base_logger.removeHandler(h)
            h.close()
    base_logger.addHandler(_decorate(logging.StreamHandler(stream=sys.stderr), level, formatter))


def _ensure_app_file_handler(base_logger: logging.Logger, *, base_dir: str, level: int, formatter: logging.Formatter) -> None:
    """
    Ensure a single TimedRotatingFileHandler points to <base_dir>/app.log.
    A handler left over from a previous call with another base_dir is replaced.
    """
    _ensure_dir(base_dir)
    desired = os.path.abspath(os.path.join(base_dir, "app.log"))

    keep = False
    for h in list(base_logger.handlers):
        if isinstance(h, logging.handlers.TimedRotatingFileHandler):
            if os.path.abspath(h.baseFilename) == desired:
                keep = True
                continue
            base_logger.removeHandler(h)
            h.close()
    if keep:
        return

    rh = logging.handlers.TimedRotatingFileHandler(
        desired,
        when="midnight",
        backupCount=14,
        encoding="utf-8",
        utc=True,
        delay=False,  # open immediately so file exists and is writable
    )
    base_logger.addHandler(_decorate(rh, level, formatter))


def build_logger(
    *,
    name: str = BASE_LOGGER,
    run_id: str,
    action: str,
    base_dir: str = "logs",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    extra: Optional[Dict[str, Any]] = None,
) -> logging.LoggerAdapter:
    """
    Configure and return a LoggerAdapter.

    Design:
      - A base logger `<name>` holds console + rotating file handlers.
      - A child logger `<name>.<action>.<run_id>` holds a per-run file handler.
      - Records propagate to base logger so they appear in all sinks.
    """
    fmt = (
        "%(asctime)s | %(levelname)-8s | %(name)s | "
        "run=%(run_id)s action=%(action)s state=%(state)s | "
        "%(message)s"
    )
    formatter = _utc_formatter(fmt)
    f_level = _level(file_level, logging.DEBUG)

    base = logging.getLogger(name)
    base.setLevel(logging.DEBUG)
    base.propagate = False

    _ensure_single_console_handler(base, level=_level(console_level, logging.INFO), formatter=formatter)
    _ensure_app_file_handler(base, base_dir=base_dir, level=f_level, formatter=formatter)

    # --- Child logger with per-run action file (configured once per action+run) ---
    child = logging.getLogger(f"{name}.{action}.{run_id}")
    child.setLevel(logging.DEBUG)
    child.propagate = True  # no console here; bubble up to base

    if not getattr(child, "_usync_action_configured", False):
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        dated_dir = os.path.join(base_dir, today)
        _ensure_dir(dated_dir)
        action_file = os.path.join(dated_dir, f"{action}_{run_id}.log")
        Path(action_file).touch(exist_ok=True)
        # Per-run file (no rotation needed)
        child.addHandler(_decorate(logging.FileHandler(action_file, encoding="utf-8"), f_level, formatter))
        child._usync_action_configured = True  # type: ignore[attr-defined]

    adapter = logging.LoggerAdapter(
        child,
        {
            "run_id": run_id,
            "action": action,
            "state": (extra or {}).get("state", "-"),
        },
    )
    adapter.debug("Logger initialised")
    return adapter
