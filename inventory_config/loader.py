"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Loads YAML files, merges them over the packaged defaults, applies
environment overrides and parses the result into the frozen dataclasses of
``inventory_config.schema``.  The single public entry point for runtime
config is ``inventory_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Enumerated settings (restoration policy, transaction mode, order
  statuses) are validated here; an unknown value raises
  ``ConfigurationError`` before any routine runs.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid value  -> ``ConfigurationError``.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import (
    RESTORATION_POLICIES,
    TRANSACTION_MODES,
    DatabaseConfig,
    InventoryConfig,
    LedgerConfig,
    ReconciliationConfig,
)
from inventory_kernel.domain.movement_types import OrderStatus
from inventory_kernel.exceptions import ConfigurationError

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "DATABASE_URL": ("database", "url"),
    "INVENTORY_DEFAULT_LOCATION": ("inventory", "default_location_code"),
    "INVENTORY_RESTORATION_POLICY": ("reconciliation", "restoration_policy"),
    "INVENTORY_TRANSACTION_MODE": ("reconciliation", "transaction_mode"),
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), type(data).__name__)
    return data


def merge_dicts(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``overlay`` onto ``base`` (overlay wins)."""
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    result = dict(data)
    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value is None or value == "":
            continue
        result[section] = dict(result.get(section) or {})
        result[section][key] = value
    return result


def _choice(key: str, value: Any, allowed: tuple[str, ...]) -> str:
    if value not in allowed:
        raise ConfigurationError(key, value, allowed)
    return value


def _positive_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(key, value)
    return value


def parse_database(data: Mapping[str, Any]) -> DatabaseConfig:
    url = data.get("url")
    if not url or not isinstance(url, str):
        raise ConfigurationError("database.url", url)
    return DatabaseConfig(
        url=url,
        echo=bool(data.get("echo", False)),
        pool_size=_positive_int("database.pool_size", data.get("pool_size", 20)),
    )


def parse_ledger(data: Mapping[str, Any]) -> LedgerConfig:
    code = data.get("default_location_code")
    return LedgerConfig(default_location_code=str(code) if code else None)


def parse_reconciliation(data: Mapping[str, Any]) -> ReconciliationConfig:
    statuses = data.get("cancelled_statuses", ["cancelled"])
    if isinstance(statuses, str):
        statuses = [statuses]
    allowed_statuses = tuple(s.value for s in OrderStatus)
    parsed_statuses = tuple(
        _choice("reconciliation.cancelled_statuses", s, allowed_statuses) for s in statuses
    )
    if not parsed_statuses:
        raise ConfigurationError("reconciliation.cancelled_statuses", statuses)
    return ReconciliationConfig(
        restoration_policy=_choice(
            "reconciliation.restoration_policy",
            data.get("restoration_policy", "keep_cancellation"),
            RESTORATION_POLICIES,
        ),
        transaction_mode=_choice(
            "reconciliation.transaction_mode",
            data.get("transaction_mode", "batch"),
            TRANSACTION_MODES,
        ),
        cancelled_statuses=parsed_statuses,
        failure_preview_limit=_positive_int(
            "reconciliation.failure_preview_limit",
            data.get("failure_preview_limit", 10),
        ),
    )


def parse_config(data: Mapping[str, Any], source_files: tuple[str, ...] = ()) -> InventoryConfig:
    """Parse a merged config dict into an InventoryConfig."""
    return InventoryConfig(
        database=parse_database(data.get("database") or {}),
        inventory=parse_ledger(data.get("inventory") or {}),
        reconciliation=parse_reconciliation(data.get("reconciliation") or {}),
        source_files=source_files,
    )


def load_config(
    path: Path | None,
    environ: Mapping[str, str],
) -> InventoryConfig:
    """Defaults, then ``path`` (if any), then environment overrides."""
    data = load_yaml_file(DEFAULTS_PATH)
    sources = [str(DEFAULTS_PATH)]
    if path is not None:
        data = merge_dicts(data, load_yaml_file(path))
        sources.append(str(path))
    data = apply_env_overrides(data, environ)
    return parse_config(data, tuple(sources))
