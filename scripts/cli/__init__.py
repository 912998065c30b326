"""
Operator CLI for the inventory ledger.

Runs the reconciliation routines one at a time: scan, report, confirm,
apply.  Entry point: ``python -m scripts.cli`` or ``inventory-ledger``.
"""

from scripts.cli.main import main

__all__ = ["main"]
