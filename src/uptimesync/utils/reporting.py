"""
Reporting helpers (table or JSON) for plan/apply results.

`print_rows` auto-selects relevant columns and produces a compact table that
fits CLI usage. JSON output is also supported for machine consumption.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

log = logging.getLogger("usync.reporting")

_SUMMARY_KEYS = ("create", "update", "replace", "delete", "noop", "read", "refresh")


def _normalize_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize a raw result row so the table is consistent:
    - changes rendered as a single "; "-joined cell,
    - outputs rendered as compact JSON,
    - status/error/id columns always present.
    """
    r = dict(row)  # shallow copy

    changes = r.get("changes") or []
    r["changes"] = "; ".join(changes) if changes else "—"

    outputs = r.get("outputs")
    r["outputs"] = json.dumps(outputs, sort_keys=True) if outputs else "—"

    r["status"] = r.get("status") or "—"
    r["id"] = r.get("id") or "—"

    err = r.get("error")
    r["error"] = (str(err).strip()[:160] if isinstance(err, (str, bytes)) and str(err).strip() else "—")
    return r


def summarize(rows: List[Dict[str, Any]]) -> str:
    counts: Dict[str, int] = {}
    failed = 0
    for r in rows:
        counts[r.get("result", "")] = counts.get(r.get("result", ""), 0) + 1
        if r.get("status") == "Failed":
            failed += 1
    parts = [f"{k}={counts[k]}" for k in _SUMMARY_KEYS if counts.get(k)]
    parts.append(f"failed={failed}")
    return " | ".join(parts)


def print_rows(rows: List[Dict[str, Any]], fmt: str = "table") -> None:
    """Render result rows as a table or JSON.

    Args:
        rows: List of dict rows with common fields (address, result, action, ...).
        fmt: Either ``"table"`` (default) or ``"json"``.
    """
    if fmt == "json":
        print(json.dumps(rows, indent=2, default=str))
        return

    norm_rows = [_normalize_row(r) for r in rows]
    if not norm_rows:
        print("No changes. Nothing is managed.")
        return

    candidates = ["address", "result", "action", "id", "status", "changes", "outputs", "error"]
    mandatory = {"address", "result", "action"}

    cols: List[str] = []
    for c in candidates:
        if (c in mandatory) or any(r.get(c) not in (None, "", "—") for r in norm_rows):
            cols.append(c)

    def _fmt(v) -> str:
        s = "" if v is None else str(v)
        return s or "—"

    widths = {c: len(c) for c in cols}
    for r in norm_rows:
        for c in cols:
            widths[c] = max(widths[c], len(_fmt(r.get(c))))

    header = "| " + " | ".join(c.ljust(widths[c]) for c in cols) + " |"
    sep = "| " + " | ".join("-" * widths[c] for c in cols) + " |"
    print(header)
    print(sep)
    for r in norm_rows:
        print("| " + " | ".join(_fmt(r.get(c)).ljust(widths[c]) for c in cols) + " |")
    print(summarize(rows))
