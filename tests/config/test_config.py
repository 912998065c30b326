"""
Configuration loading: packaged defaults, YAML overlay, environment
overrides and validation.
"""

import pytest
import yaml

from inventory_config import get_active_config
from inventory_config.loader import DEFAULTS_PATH, load_yaml_file, merge_dicts
from inventory_config.schema import DatabaseConfig
from inventory_kernel.exceptions import ConfigurationError


def write_yaml(tmp_path, data, name="inventory.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:

    def test_packaged_defaults(self):
        config = get_active_config(environ={})

        assert config.database.url == "sqlite:///inventory_ledger.db"
        assert config.inventory.default_location_code is None
        assert config.reconciliation.restoration_policy == "keep_cancellation"
        assert config.reconciliation.transaction_mode == "batch"
        assert config.reconciliation.cancelled_statuses == ("cancelled",)
        assert config.reconciliation.failure_preview_limit == 10
        assert config.source_files == (str(DEFAULTS_PATH),)

    def test_config_is_frozen(self):
        config = get_active_config(environ={})
        with pytest.raises(AttributeError):
            config.reconciliation.transaction_mode = "per_unit"


class TestOverlay:

    def test_file_overrides_defaults(self, tmp_path):
        path = write_yaml(tmp_path, {
            "inventory": {"default_location_code": "MAIN"},
            "reconciliation": {
                "transaction_mode": "per_unit",
                "cancelled_statuses": ["cancelled", "rejected"],
            },
        })

        config = get_active_config(path, environ={})

        assert config.inventory.default_location_code == "MAIN"
        assert config.reconciliation.transaction_mode == "per_unit"
        assert config.reconciliation.cancelled_statuses == ("cancelled", "rejected")
        # Untouched keys keep their defaults
        assert config.reconciliation.restoration_policy == "keep_cancellation"
        assert config.source_files[-1] == str(path)

    def test_path_from_environment(self, tmp_path):
        path = write_yaml(tmp_path, {"reconciliation": {"failure_preview_limit": 3}})

        config = get_active_config(environ={"INVENTORY_CONFIG": str(path)})

        assert config.reconciliation.failure_preview_limit == 3

    def test_environment_beats_file(self, tmp_path):
        path = write_yaml(tmp_path, {"reconciliation": {"restoration_policy": "keep_return"}})

        config = get_active_config(
            path,
            environ={
                "INVENTORY_RESTORATION_POLICY": "keep_cancellation",
                "DATABASE_URL": "postgresql://ledger:secret@db/inventory",
                "INVENTORY_DEFAULT_LOCATION": "WH",
            },
        )

        assert config.reconciliation.restoration_policy == "keep_cancellation"
        assert config.database.url == "postgresql://ledger:secret@db/inventory"
        assert config.inventory.default_location_code == "WH"

    def test_empty_environment_values_ignored(self):
        config = get_active_config(environ={"INVENTORY_TRANSACTION_MODE": ""})
        assert config.reconciliation.transaction_mode == "batch"

    def test_single_status_string(self, tmp_path):
        path = write_yaml(tmp_path, {"reconciliation": {"cancelled_statuses": "refunded"}})
        config = get_active_config(path, environ={})
        assert config.reconciliation.cancelled_statuses == ("refunded",)

    def test_merge_is_recursive(self):
        merged = merge_dicts({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}})
        assert merged == {"a": {"x": 1, "y": 3}, "b": 1}


class TestValidation:

    @pytest.mark.parametrize(
        "section,key,value",
        [
            ("reconciliation", "restoration_policy", "keep_both"),
            ("reconciliation", "transaction_mode", "chunked"),
            ("reconciliation", "cancelled_statuses", ["cancelled", "archived"]),
            ("reconciliation", "cancelled_statuses", []),
            ("reconciliation", "failure_preview_limit", 0),
            ("database", "pool_size", "many"),
            ("database", "url", ""),
        ],
    )
    def test_invalid_values_rejected(self, tmp_path, section, key, value):
        path = write_yaml(tmp_path, {section: {key: value}})

        with pytest.raises(ConfigurationError) as exc_info:
            get_active_config(path, environ={})

        assert exc_info.value.code == "INVALID_CONFIGURATION"
        assert exc_info.value.key == f"{section}.{key}"

    def test_invalid_environment_value(self):
        with pytest.raises(ConfigurationError):
            get_active_config(environ={"INVENTORY_TRANSACTION_MODE": "sometimes"})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml", environ={})

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_yaml_file(path)

    def test_empty_file_is_empty_overlay(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}


class TestConfigAudit:

    def test_config_loaded_logged_with_masked_password(self, captured_logs):
        get_active_config(environ={"DATABASE_URL": "postgresql://ledger:secret@db/inventory"})

        record = next(r for r in captured_logs() if r["message"] == "config_loaded")
        assert record["database_url"] == "postgresql://ledger:***@db/inventory"
        assert "secret" not in str(record)
        assert record["transaction_mode"] == "batch"

    def test_masked_url_without_credentials(self):
        assert DatabaseConfig(url="sqlite:///x.db").masked_url == "sqlite:///x.db"
