"""
Command-line interface for uptimesync.

Usage (examples):
  - Plan without touching the API (no refresh, no token needed):
      uptimesync plan -f ./uptime.yml --no-refresh

  - Apply (HTTP CRUD, state kept in uptimesync.state.json):
      USYNC_API__TOKEN=... uptimesync apply -f ./uptime.yml

  - Adopt an existing webhook, then list monitoring IPs of two clusters:
      uptimesync import outgoing_webhook.slack 12345
      uptimesync ips --cluster us --cluster eu
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, Iterable, List, Optional

from .core.client import HttpError, UptimeClient
from .core.config import AppConfig, ConfigError, load_config
from .core.engine import DesiredConfig, Engine, ValidationError, has_failures, plan_row
from .core.logging_setup import build_logger
from .core.resource import ResourceError
from .core.schema import SchemaError
from .core.state import StateError, StateStore
from .utils.reporting import print_rows, summarize

EXIT_OK = 0
EXIT_GENERIC_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_VALIDATION_ERROR = 3
EXIT_NETWORK_ERROR = 4
EXIT_PARTIAL_FAILURE = 5


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="uptimesync", description="Declarative sync for Better Stack Uptime")

    # Config / HTTP
    p.add_argument("--config", default=None, help="YAML config file (default: ./uptimesync.yml, ...)")
    p.add_argument("--state", default=None, help="State file path")
    p.add_argument("--base-url", default=None, help="API base URL")
    p.add_argument("--token", default=None, help="API token (prefer USYNC_API__TOKEN)")
    p.add_argument("--no-verify", action="store_true", help="Disable TLS verification")
    p.add_argument("--timeout-sec", type=int, default=None, help="HTTP timeout seconds")
    p.add_argument("--format", choices=["table", "json"], default="table", help="Output format")

    # Logging
    p.add_argument("--logs-dir", default=None, help="Logs base directory")
    p.add_argument("--console-level", default=None, help="Console log level (INFO..CRITICAL)")

    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("plan", help="Show what apply would change")
    sp.add_argument("-f", "--file", required=True, help="Desired-state YAML file")
    sp.add_argument("--no-refresh", action="store_true", help="Diff against local state only (no HTTP)")

    sp = sub.add_parser("apply", help="Create, update, replace and delete resources")
    sp.add_argument("-f", "--file", required=True, help="Desired-state YAML file")
    sp.add_argument("--dry-run", action="store_true", help="Plan only, no network calls")

    sub.add_parser("destroy", help="Delete every resource recorded in state")
    sub.add_parser("refresh", help="Re-read every resource recorded in state")

    sp = sub.add_parser("import", help="Adopt an existing object into state")
    sp.add_argument("address", help="<type>.<name>, e.g. outgoing_webhook.slack")
    sp.add_argument("id", help="Remote object id")

    sp = sub.add_parser("ips", help="List monitoring IPs")
    sp.add_argument("--cluster", action="append", default=[], help="Only this cluster (repeatable)")

    return p


def _cli_overrides(args: argparse.Namespace, dry_run: bool) -> Dict[str, Any]:
    return {
        "app": {"dry_run": True if dry_run else None},
        "api": {
            "base_url": args.base_url,
            "token": args.token,
            "verify_tls": False if args.no_verify else None,
            "timeout_sec": args.timeout_sec,
        },
        "state": {"path": args.state},
        "logging": {"base_dir": args.logs_dir, "console_level": args.console_level},
    }


def _load(args: argparse.Namespace, dry_run: bool) -> AppConfig:
    overrides = _cli_overrides(args, dry_run)
    if args.config:
        return load_config(overrides, files=(args.config,))
    return load_config(overrides)


def _make_client(cfg: AppConfig, logger) -> Optional[UptimeClient]:
    if cfg.app.dry_run and not cfg.api.token:
        return None
    return UptimeClient(
        cfg.api.base_url,
        cfg.api.token,
        verify_tls=bool(cfg.api.verify_tls),
        timeout_sec=int(cfg.api.timeout_sec),
        logger=logger,
    )


def _plan_rows(engine: Engine, desired: DesiredConfig, refresh: bool) -> List[Dict[str, Any]]:
    rows = []
    for item in engine.plan(desired, refresh=refresh):
        row = plan_row(item)
        if item.error:
            row.update({"status": "Failed", "error": item.error})
        rows.append(row)
    return rows


def _run(args: argparse.Namespace) -> int:
    dry_run = bool(getattr(args, "dry_run", False) or getattr(args, "no_refresh", False))
    cfg = _load(args, dry_run)

    logger = build_logger(
        run_id=cfg.run_id,
        action=args.cmd,
        base_dir=cfg.logging.base_dir,
        console_level=cfg.logging.console_level,
        file_level=cfg.logging.file_level,
        extra={"state": cfg.state.path},
    )
    logger.info("Starting uptimesync %s (dry_run=%s)", args.cmd, cfg.app.dry_run)

    state = StateStore(cfg.state.path).load()
    engine = Engine(_make_client(cfg, logger), state, logger=logger)

    if args.cmd == "plan":
        desired = DesiredConfig.load(args.file)
        rows = _plan_rows(engine, desired, refresh=not args.no_refresh)
    elif args.cmd == "apply":
        desired = DesiredConfig.load(args.file)
        rows = engine.apply(desired, dry_run=cfg.app.dry_run)
    elif args.cmd == "destroy":
        rows = engine.destroy()
    elif args.cmd == "refresh":
        rows = engine.refresh()
    elif args.cmd == "import":
        entry = engine.import_resource(args.address, args.id)
        rows = [{"address": args.address, "result": "import", "action": "Imported",
                 "id": entry["id"], "status": "Success"}]
    elif args.cmd == "ips":
        data = engine.read_data("ip_list", {"filter_clusters": list(args.cluster)})
        rows = [{"address": "data.ip_list", "result": "read", "action": "Monitoring IPs", "status": "Success",
                 "outputs": {"ips": data.get("ips"), "all_clusters": data.get("all_clusters")}}]
    else:  # pragma: no cover
        raise RuntimeError(f"Unknown command {args.cmd}")

    print_rows(rows, args.format)
    logger.info("%s summary: %s", args.cmd, summarize(rows))
    return EXIT_PARTIAL_FAILURE if has_failures(rows) else EXIT_OK


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        return _run(args)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except (ValidationError, SchemaError, StateError, ResourceError, FileNotFoundError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR
    except HttpError as exc:
        print(f"HTTP error: {exc}", file=sys.stderr)
        return EXIT_NETWORK_ERROR
    except Exception as exc:  # pragma: no cover
        print(f"Unexpected error: {exc!r}", file=sys.stderr)
        return EXIT_GENERIC_ERROR


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
