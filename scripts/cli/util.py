"""CLI utilities: report formatting and the confirmation prompt."""

import json
import sys
from typing import Any

from inventory_services.reconciliation.base import ReconciliationReport

_COUNT_LABELS = (
    ("groups_found", "groups found"),
    ("movements_appended", "movements appended"),
    ("movements_deleted", "movements deleted"),
    ("movements_fixed", "movements fixed"),
    ("movements_correct", "movements already correct"),
    ("movements_skipped", "movements skipped"),
    ("variants_recomputed", "variants recomputed"),
    ("scopes_processed", "scopes processed"),
    ("scopes_corrected", "scopes corrected"),
    ("errors", "errors"),
)


def _fmt_value(value: Any) -> str:
    if isinstance(value, dict):
        return ", ".join(f"{k}={_fmt_value(v)}" for k, v in value.items())
    if isinstance(value, list):
        return "[" + ", ".join(_fmt_value(v) for v in value) + "]"
    return str(value)


def _fmt_preview(label: str, preview: dict) -> list[str]:
    items = preview["items"]
    total = preview["total"]
    if not total:
        return []
    header = f"  {label}:"
    if len(items) < total:
        header = f"  {label} (showing first {len(items)} of {total}):"
    return [header] + [f"    {_fmt_value(item)}" for item in items]


def format_report(report: ReconciliationReport, pending: bool = False) -> str:
    """Human-readable rendering of a routine report.

    ``pending`` renders a scan awaiting confirmation, before any outcome.
    """
    mode = " [dry run]" if report.dry_run else ""
    status = "planned changes" if pending else report.outcome.value
    lines = [f"{report.routine}{mode}: {status} (run {report.run_id})"]

    for attr, label in _COUNT_LABELS:
        value = getattr(report, attr)
        if value:
            lines.append(f"  {label:<28}{value}")

    for key, value in report.details.items():
        if isinstance(value, dict) and "items" in value and "total" in value:
            lines.extend(_fmt_preview(key.replace("_", " "), value))
        else:
            lines.append(f"  {key.replace('_', ' '):<28}{_fmt_value(value)}")

    if report.error_message:
        lines.append(f"  error: [{report.error_code}] {report.error_message}")
    if report.stale_variants:
        lines.append(
            "  stale variants: "
            + ", ".join(str(v) for v in report.stale_variants)
            + " (run recalculate-history to repair)"
        )
    if report.failures:
        note = report.preview_note
        lines.append(f"  failures ({note}):" if note else "  failures:")
        for failure in report.failure_preview:
            lines.append(f"    {failure.unit}: [{failure.error_code}] {failure.message}")
    if not pending:
        lines.append(f"  {'duration':<28}{report.duration_ms} ms")
    return "\n".join(lines)


def format_json(report: ReconciliationReport) -> str:
    return json.dumps(report.to_dict(), indent=2, sort_keys=True, default=str)


def confirm_prompt(report: ReconciliationReport, stream=None) -> bool:
    """Show the scan report and ask the operator to proceed.

    ``stream`` receives the report and prompt (stdout by default; the CLI
    passes stderr in --json mode so stdout stays machine-readable).
    """
    out = stream or sys.stdout
    print(format_report(report, pending=True), file=out)
    print("  Apply these changes? [y/N]: ", end="", file=out, flush=True)
    try:
        answer = input().strip().lower()
    except (EOFError, KeyboardInterrupt):
        print(file=out)
        return False
    return answer in ("y", "yes")
