"""
Configuration schema (``inventory_config.schema``).

Frozen dataclasses describing the runtime configuration.  Instances are
produced only by ``inventory_config.loader``; nothing else constructs them
from raw dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field

RESTORATION_POLICIES: tuple[str, ...] = ("keep_cancellation", "keep_return")
TRANSACTION_MODES: tuple[str, ...] = ("batch", "per_unit")


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings."""

    url: str
    echo: bool = False
    pool_size: int = 20

    @property
    def masked_url(self) -> str:
        """URL with any password replaced, for logging."""
        if "@" not in self.url or "://" not in self.url:
            return self.url
        scheme, rest = self.url.split("://", 1)
        creds, host = rest.rsplit("@", 1)
        if ":" in creds:
            user = creds.split(":", 1)[0]
            return f"{scheme}://{user}:***@{host}"
        return self.url


@dataclass(frozen=True)
class LedgerConfig:
    """Ledger settings."""

    # Explicit default location code; None means is_default flag, then oldest
    default_location_code: str | None = None


@dataclass(frozen=True)
class ReconciliationConfig:
    """Reconciliation routine settings."""

    restoration_policy: str = "keep_cancellation"
    transaction_mode: str = "batch"
    cancelled_statuses: tuple[str, ...] = ("cancelled",)
    failure_preview_limit: int = 10


@dataclass(frozen=True)
class InventoryConfig:
    """The whole runtime configuration."""

    database: DatabaseConfig
    inventory: LedgerConfig = field(default_factory=LedgerConfig)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
    source_files: tuple[str, ...] = ()
