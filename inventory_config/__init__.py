"""
inventory_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Routines and the CLI receive the returned
    ``InventoryConfig``; none of them read YAML or environment variables
    themselves.

Architecture position:
    Configuration -- sits above ``inventory_kernel`` and below
    ``inventory_services`` and the CLI.  The kernel MUST NEVER import from
    ``inventory_config``.

Failure modes:
    - ``FileNotFoundError`` -- an explicit config file does not exist.
    - ``ConfigurationError`` -- a value is outside its allowed set.

Audit relevance:
    Every successful ``get_active_config()`` call emits a ``config_loaded``
    log entry with the resolved values (database password masked) and the
    files they came from.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from inventory_config.loader import load_config
from inventory_config.schema import (
    DatabaseConfig,
    InventoryConfig,
    LedgerConfig,
    ReconciliationConfig,
)
from inventory_kernel.logging_config import get_logger

_logger = get_logger("config")

__all__ = [
    "DatabaseConfig",
    "InventoryConfig",
    "LedgerConfig",
    "ReconciliationConfig",
    "get_active_config",
]


def get_active_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> InventoryConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: YAML file overlaid on the packaged defaults.  Falls back to
            the ``INVENTORY_CONFIG`` environment variable.
        environ: Environment mapping; defaults to ``os.environ``.

    Returns:
        A frozen InventoryConfig.
    """
    env = os.environ if environ is None else environ
    config_path = path or env.get("INVENTORY_CONFIG") or None
    config = load_config(Path(config_path) if config_path else None, env)

    _logger.info(
        "config_loaded",
        extra={
            "database_url": config.database.masked_url,
            "default_location_code": config.inventory.default_location_code,
            "restoration_policy": config.reconciliation.restoration_policy,
            "transaction_mode": config.reconciliation.transaction_mode,
            "cancelled_statuses": list(config.reconciliation.cancelled_statuses),
            "source_files": list(config.source_files),
        },
    )
    return config
