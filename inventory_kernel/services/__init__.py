"""Kernel services: the Ledger Writer and its collaborators."""

from inventory_kernel.services.ledger_writer import AppendResult, AppendStatus, LedgerWriter
from inventory_kernel.services.projection_service import ProjectionService, VariantRebuild
from inventory_kernel.services.stock_lifecycle import (
    LifecycleResult,
    LineOutcome,
    LineStatus,
    StockLifecycleService,
)

__all__ = [
    "AppendResult",
    "AppendStatus",
    "LedgerWriter",
    "ProjectionService",
    "VariantRebuild",
    "LifecycleResult",
    "LineOutcome",
    "LineStatus",
    "StockLifecycleService",
]
