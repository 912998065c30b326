"""
NullLocationMigration: attach legacy movements to the default location.
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from inventory_kernel.domain.movement_types import MovementType
from inventory_kernel.stores.movement_store import MovementStore
from inventory_services.reconciliation import NullLocationMigration, RunOutcome


class TestDefaultLocationResolution:

    def test_no_location_fails_before_mutating(self, ledger, legacy_ledger, session_factory):
        movement_id = legacy_ledger.movement(3, None, MovementType.PURCHASE_RECEIVED, 4)

        report = NullLocationMigration(session_factory).run()

        assert report.outcome == RunOutcome.FAILED
        assert report.error_code == "NO_LOCATION_CONFIGURED"
        assert ledger.movement(movement_id).location_id is None

    def test_inactive_default_falls_back_to_oldest_active(
        self, ledger, legacy_ledger, session_factory
    ):
        ledger.add_location("OLD", is_default=True, is_active=False)
        first_active = ledger.add_location("A")
        ledger.add_location("B")
        legacy_ledger.movement(3, None, MovementType.PURCHASE_RECEIVED, 4)

        report = NullLocationMigration(session_factory).run(dry_run=True)

        assert report.details["default_location"]["id"] == first_active

    def test_flagged_default_wins(self, ledger, legacy_ledger, session_factory):
        ledger.add_location("A")
        flagged = ledger.add_location("B", is_default=True)
        movement_id = legacy_ledger.movement(3, None, MovementType.PURCHASE_RECEIVED, 4)

        NullLocationMigration(session_factory).run()

        assert ledger.movement(movement_id).location_id == flagged

    def test_configured_code_pins_location(self, ledger, legacy_ledger, session_factory):
        ledger.add_location("A", is_default=True)
        pinned = ledger.add_location("B")
        legacy_ledger.movement(3, None, MovementType.PURCHASE_RECEIVED, 4)

        report = NullLocationMigration(session_factory, default_location_code="B").run()

        assert report.details["default_location"]["id"] == pinned
        assert ledger.scope_quantity(3, pinned) == 4

    def test_unknown_configured_code_fails(self, ledger, legacy_ledger, session_factory):
        ledger.add_location("A", is_default=True)
        legacy_ledger.movement(3, None, MovementType.PURCHASE_RECEIVED, 4)

        report = NullLocationMigration(session_factory, default_location_code="ZZ").run()

        assert report.outcome == RunOutcome.FAILED
        assert "ZZ" in report.error_message


class TestNullLocationApply:

    @pytest.fixture
    def default(self, ledger):
        return ledger.add_location("WH", is_default=True)

    def test_dry_run_counts_only(self, ledger, legacy_ledger, session_factory, default):
        movement_id = legacy_ledger.movement(3, None, MovementType.PURCHASE_RECEIVED, 4)

        report = NullLocationMigration(session_factory).run(dry_run=True)

        assert report.outcome == RunOutcome.DRY_RUN
        assert report.details["movements_to_fix"] == 1
        assert ledger.movement(movement_id).location_id is None
        assert ledger.scope_quantity(3, default) is None

    def test_increments_existing_projection(self, ledger, legacy_ledger, session_factory, default):
        ledger.receive(3, default, 10)
        legacy_ledger.movement(3, None, MovementType.SOLD_MANUAL, -2)

        report = NullLocationMigration(session_factory).run()

        assert report.movements_fixed == 1
        assert ledger.scope_quantity(3, default) == 8
        assert ledger.aggregate(3) == 8

    def test_failed_movement_is_counted_and_batch_continues(
        self, ledger, legacy_ledger, session_factory, default, monkeypatch
    ):
        bad = legacy_ledger.movement(3, None, MovementType.PURCHASE_RECEIVED, 4)
        good = legacy_ledger.movement(5, None, MovementType.PURCHASE_RECEIVED, 1)
        original = MovementStore.assign_location

        def assign(self, movement_id, location_id):
            if movement_id == bad:
                raise SQLAlchemyError("row locked")
            return original(self, movement_id, location_id)

        monkeypatch.setattr(MovementStore, "assign_location", assign)

        report = NullLocationMigration(session_factory).run()

        assert report.outcome == RunOutcome.PARTIAL
        assert report.movements_fixed == 1
        assert report.errors == 1
        assert report.failures[0].unit == f"movement {bad}"
        assert ledger.movement(bad).location_id is None
        assert ledger.movement(good).location_id == default
        assert ledger.scope_quantity(3, default) is None
