"""
Inventory Kernel

An append-only stock movement ledger with:
- At-most-once order effects (one sale, one restoration per order line)
- Per-location stock projections derived from the movement log
- A per-variant aggregate that always equals the sum of its locations
- Row-level locking for concurrent writers
"""

__version__ = "0.1.0"
