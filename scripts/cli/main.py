"""
Operator CLI: run one reconciliation routine against the inventory ledger.

Usage:
    python -m scripts.cli cleanup-duplicates --dry-run
    python -m scripts.cli fix-null-locations --yes
    python -m scripts.cli remove-duplicate-restorations --policy keep_return
    python -m scripts.cli recalculate-history --json
    python -m scripts.cli process-returns --dry-run
    python -m scripts.cli verify

Exit status:
    0  succeeded, or dry-run report printed
    1  failed, precondition not met, or projections left stale
    2  aborted at the confirmation prompt
    3  completed with per-item errors
    4  nothing to do
"""

import argparse
import dataclasses
import functools
import logging
import sys

from inventory_services.reconciliation.base import RunOutcome

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ABORTED = 2
EXIT_PARTIAL = 3
EXIT_NOTHING_TO_DO = 4

OUTCOME_EXIT_CODES = {
    RunOutcome.SUCCEEDED: EXIT_OK,
    RunOutcome.DRY_RUN: EXIT_OK,
    RunOutcome.FAILED: EXIT_FAILED,
    RunOutcome.PROJECTION_STALE: EXIT_FAILED,
    RunOutcome.ABORTED: EXIT_ABORTED,
    RunOutcome.PARTIAL: EXIT_PARTIAL,
    RunOutcome.NOTHING_TO_DO: EXIT_NOTHING_TO_DO,
}

_HELP = {
    "cleanup-duplicates": "Keep one sale per (order, variant); delete the rest",
    "fix-null-locations": "Assign movements without a location to the default location",
    "remove-cancelled-movements": "Delete sale and cancellation movements of cancelled orders",
    "remove-duplicate-restorations": "Resolve orders restored by both a cancellation and a return",
    "recalculate-history": "Replay every scope and repair snapshot chains and projections",
    "process-cancellations": "Restore stock for cancelled orders with a sale but no cancellation",
    "process-returns": "Record missing return movements for completed returns",
    "verify": "Audit the ledger without changing it",
}


def _parse_args(argv=None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--dry-run", action="store_true", help="Report only; write nothing")
    common.add_argument("--yes", "-y", action="store_true", help="Do not prompt for confirmation")
    common.add_argument("--json", action="store_true", help="Print the report as JSON")
    common.add_argument("--db-url", default=None, help="Database URL (overrides config)")
    common.add_argument("--config", default=None, help="YAML config file")
    common.add_argument("--verbose", "-v", action="store_true", help="Structured logs to stderr")
    common.add_argument(
        "--preview", type=int, default=None, metavar="N",
        help="Number of failures and groups to list",
    )
    common.add_argument(
        "--transaction-mode", choices=("batch", "per_unit"), default=None,
        help="Override reconciliation.transaction_mode",
    )

    parser = argparse.ArgumentParser(
        prog="inventory-ledger",
        description="Inventory ledger reconciliation",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    for name, help_text in _HELP.items():
        cmd = sub.add_parser(name, parents=[common], help=help_text, description=help_text)
        if name == "remove-duplicate-restorations":
            cmd.add_argument(
                "--policy", choices=("keep_cancellation", "keep_return"), default=None,
                help="Which restoration survives (default: from config)",
            )
    return parser.parse_args(argv)


def _effective_config(args):
    from inventory_config import get_active_config

    config = get_active_config(args.config)
    if args.db_url:
        config = dataclasses.replace(
            config, database=dataclasses.replace(config.database, url=args.db_url)
        )
    overrides = {}
    if args.preview is not None:
        overrides["failure_preview_limit"] = max(args.preview, 0)
    if args.transaction_mode:
        overrides["transaction_mode"] = args.transaction_mode
    if overrides:
        config = dataclasses.replace(
            config, reconciliation=dataclasses.replace(config.reconciliation, **overrides)
        )
    return config


def main(argv=None) -> int:
    args = _parse_args(argv)

    from inventory_kernel.logging_config import configure_logging

    configure_logging(level=logging.DEBUG if args.verbose else logging.WARNING)

    from inventory_kernel.exceptions import ConfigurationError

    try:
        config = _effective_config(args)
    except (ConfigurationError, FileNotFoundError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return EXIT_FAILED

    from inventory_kernel.db.engine import get_session_factory, init_engine_from_url
    from inventory_kernel.db.immutability import register_immutability_listeners
    from inventory_services import build_routine
    from scripts.cli.util import confirm_prompt, format_json, format_report

    try:
        init_engine_from_url(
            config.database.url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
        )
    except Exception as exc:
        print(f"  ERROR: cannot connect to {config.database.masked_url}: {exc}", file=sys.stderr)
        return EXIT_FAILED
    register_immutability_listeners()

    routine = build_routine(
        args.command,
        get_session_factory(),
        config,
        restoration_policy=getattr(args, "policy", None),
    )
    confirm = None
    if not args.yes:
        confirm = functools.partial(
            confirm_prompt, stream=sys.stderr if args.json else sys.stdout
        )
    report = routine.run(dry_run=args.dry_run, confirm=confirm)

    if args.json:
        print(format_json(report))
    else:
        print(format_report(report))
    return OUTCOME_EXIT_CODES[report.outcome]


if __name__ == "__main__":
    sys.exit(main())
