#!/usr/bin/env python3
"""
Scheduler sweep: auto-confirm stale worker confirmations and finalize shifts
whose ratings are in or whose rating grace has elapsed.

Meant to run from cron every few minutes.  Each shift settles in its own
transaction; failures are logged and counted, and the exit code is 1 when
any shift failed.

Usage:
  python scripts/finalize_due_shifts.py
  python scripts/finalize_due_shifts.py --config /etc/crew/settlement.yaml
  python scripts/finalize_due_shifts.py --database-url postgresql+psycopg2://crew@db/crew
  python scripts/finalize_due_shifts.py --as-of 2025-06-05T09:00:00+00:00
"""

from __future__ import annotations

import argparse
import os
import sys
from datetime import datetime, timezone

# Allow running as a plain script from a checkout (no PYTHONPATH required).
_script_dir = os.path.dirname(os.path.abspath(__file__))
_root = os.path.dirname(_script_dir)
if _root not in sys.path:
    sys.path.insert(0, _root)

from crew_config import get_active_policy, get_database_url  # noqa: E402
from crew_kernel.db.engine import (  # noqa: E402
    create_tables,
    get_session_factory,
    init_engine_from_url,
)
from crew_kernel.db.immutability import register_immutability_listeners  # noqa: E402
from crew_kernel.logging_config import get_logger  # noqa: E402
from crew_services import SettlementOrchestrator  # noqa: E402

logger = get_logger("scripts.finalize_due_shifts")


def _parse_as_of(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an ISO timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument(
        "--config",
        default=None,
        help="Settlement YAML (default: packaged crew_config/defaults/settlement.yaml)",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Overrides database.url from the config file",
    )
    parser.add_argument(
        "--as-of",
        type=_parse_as_of,
        default=None,
        help="Evaluate due shifts at this ISO timestamp instead of now",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing ledger tables first (local SQLite runs)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    policy = get_active_policy(args.config)
    init_engine_from_url(args.database_url or get_database_url(args.config))
    if args.create_tables:
        create_tables()
    else:
        register_immutability_listeners()

    orchestrator = SettlementOrchestrator(
        session_factory=get_session_factory(),
        policy=policy,
    )
    report = orchestrator.finalize_due_shifts(args.as_of)

    print(
        f"auto-confirmed: {len(report.auto_confirmed)}  "
        f"finalized: {len(report.finalized)}  "
        f"failed: {len(report.failures)}"
    )
    for failure in report.failures:
        print(f"  {failure.shift_id}  {failure.command}  {failure.error_code}: {failure.message}")
    for warning in report.warnings:
        print(f"  warning: {warning}")

    if report.failures:
        logger.warning("sweep_had_failures", extra={"failures": len(report.failures)})
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
