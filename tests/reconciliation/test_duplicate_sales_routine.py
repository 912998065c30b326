"""
DuplicateSaleCleanup: keep the earliest sale per (order, variant).
"""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from inventory_config.schema import ReconciliationConfig
from inventory_kernel.domain.movement_types import MovementType
from inventory_services.reconciliation import (
    DuplicateSaleCleanup,
    HistoryRecalculator,
    LedgerVerification,
    RunOutcome,
)

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def wh(ledger):
    return ledger.add_location("WH", is_default=True)


def seed_duplicate(legacy_ledger, variant, location, order_id, quantity=-2, copies=2, start=0):
    ids = []
    for i in range(copies):
        ids.append(
            legacy_ledger.movement(
                variant, location, MovementType.SALE, quantity,
                order_id=order_id,
                created_at=BASE_TIME + timedelta(hours=start + i),
                update_projection=True,
            )
        )
    return ids


class TestDuplicateSaleDryRun:

    def test_reports_without_writing(self, ledger, legacy_ledger, session_factory, wh):
        seed_duplicate(legacy_ledger, 7, wh, order_id=1)

        report = DuplicateSaleCleanup(session_factory).run(dry_run=True)

        assert report.outcome == RunOutcome.DRY_RUN
        assert report.groups_found == 1
        assert report.details["movements_to_delete"] == 1
        assert report.details["variants_affected"] == 1
        assert report.movements_deleted == 0
        assert ledger.movement_count(MovementType.SALE) == 2
        assert ledger.scope_quantity(7, wh) == -4

    def test_breakdown_names_keep_and_delete_ids(self, ledger, legacy_ledger, session_factory, wh):
        order = ledger.add_order(order_number="SO-77")
        keep, dup = seed_duplicate(legacy_ledger, 7, wh, order_id=order)

        report = DuplicateSaleCleanup(session_factory).run(dry_run=True)

        group = report.details["groups"]["items"][0]
        assert group["keep_id"] == keep
        assert group["delete_ids"] == [dup]
        assert group["order_number"] == "SO-77"


class TestDuplicateSaleApply:

    def test_keeps_earliest_and_recomputes(self, ledger, legacy_ledger, session_factory, wh):
        keep, dup = seed_duplicate(legacy_ledger, 7, wh, order_id=1)

        report = DuplicateSaleCleanup(session_factory).run()

        assert report.outcome == RunOutcome.SUCCEEDED
        assert report.movements_deleted == 1
        assert report.variants_recomputed == 1
        assert ledger.movement(keep) is not None
        assert ledger.movement(dup) is None
        assert ledger.scope_quantity(7, wh) == -2
        assert ledger.aggregate(7) == -2

    def test_many_copies_leave_exactly_one(self, ledger, legacy_ledger, session_factory, wh):
        ids = seed_duplicate(legacy_ledger, 7, wh, order_id=1, quantity=-1, copies=4)

        DuplicateSaleCleanup(session_factory).run()

        assert [m.id for m in ledger.movements(7)] == [ids[0]]
        assert ledger.scope_quantity(7, wh) == -1

    def test_other_movements_survive(self, ledger, legacy_ledger, session_factory, wh):
        ledger.receive(7, wh, 10)
        seed_duplicate(legacy_ledger, 7, wh, order_id=1, start=1)
        ledger.append(7, wh, MovementType.SALE, -1, order_id=2)

        DuplicateSaleCleanup(session_factory).run()

        assert ledger.movement_count() == 3
        assert ledger.scope_quantity(7, wh) == 10 - 2 - 1

    def test_second_run_has_nothing_to_do(self, ledger, legacy_ledger, session_factory, wh):
        seed_duplicate(legacy_ledger, 7, wh, order_id=1)
        DuplicateSaleCleanup(session_factory).run()

        report = DuplicateSaleCleanup(session_factory).run()

        assert report.outcome == RunOutcome.NOTHING_TO_DO
        assert report.movements_deleted == 0

    def test_per_unit_mode(self, ledger, legacy_ledger, session_factory, wh):
        seed_duplicate(legacy_ledger, 7, wh, order_id=1)
        seed_duplicate(legacy_ledger, 8, wh, order_id=1)
        config = ReconciliationConfig(transaction_mode="per_unit")

        report = DuplicateSaleCleanup(session_factory, config=config).run()

        assert report.outcome == RunOutcome.SUCCEEDED
        assert report.units_applied == 2
        assert report.movements_deleted == 2
        assert ledger.scope_quantity(7, wh) == -2
        assert ledger.scope_quantity(8, wh) == -2


def _failing_rebuild_for(variant_id):
    original = DuplicateSaleCleanup.rebuild_variant

    def rebuild(self, session, product_variant_id):
        if product_variant_id == variant_id:
            raise SQLAlchemyError("rebuild failed")
        return original(self, session, product_variant_id)

    return rebuild


class TestDuplicateSaleFailures:

    def test_batch_recompute_failure_leaves_projection_stale(
        self, ledger, legacy_ledger, session_factory, wh, monkeypatch, captured_logs
    ):
        seed_duplicate(legacy_ledger, 7, wh, order_id=1)
        seed_duplicate(legacy_ledger, 8, wh, order_id=1)
        monkeypatch.setattr(DuplicateSaleCleanup, "rebuild_variant", _failing_rebuild_for(8))

        report = DuplicateSaleCleanup(session_factory).run()

        assert report.outcome == RunOutcome.PROJECTION_STALE
        assert report.error_code == "PROJECTION_STALE"
        assert report.stale_variants == [8]
        # Deletions committed; only variant 8's projection is stale
        assert report.movements_deleted == 2
        assert ledger.scope_quantity(7, wh) == -2
        assert ledger.scope_quantity(8, wh) == -4
        assert any(r["message"] == "projection_stale" for r in captured_logs())

    def test_per_unit_failure_rolls_back_only_that_unit(
        self, ledger, legacy_ledger, session_factory, wh, monkeypatch
    ):
        seed_duplicate(legacy_ledger, 7, wh, order_id=1)
        seed_duplicate(legacy_ledger, 8, wh, order_id=1)
        monkeypatch.setattr(DuplicateSaleCleanup, "rebuild_variant", _failing_rebuild_for(8))
        config = ReconciliationConfig(transaction_mode="per_unit")

        report = DuplicateSaleCleanup(session_factory, config=config).run()

        assert report.outcome == RunOutcome.PARTIAL
        assert report.errors == 1
        assert report.failures[0].unit == "order 1 variant 8"
        assert report.failures[0].error_code == "SQLAlchemyError"
        assert report.movements_deleted == 1
        assert len(ledger.movements(8)) == 2
        assert len(ledger.movements(7)) == 1


class TestStaleProjectionRepair:
    """A projection_stale run is finished by recalculate-history."""

    def test_history_rebuilds_projection_left_stale(
        self, ledger, legacy_ledger, session_factory, wh, monkeypatch
    ):
        # Snapshots already consistent, so the surviving chain needs no fix
        legacy_ledger.movement(
            8, wh, MovementType.SALE, -2, order_id=1,
            quantity_before=0, quantity_after=-2,
            created_at=BASE_TIME, update_projection=True,
        )
        legacy_ledger.movement(
            8, wh, MovementType.SALE, -2, order_id=1,
            quantity_before=-2, quantity_after=-4,
            created_at=BASE_TIME + timedelta(hours=1), update_projection=True,
        )
        monkeypatch.setattr(DuplicateSaleCleanup, "rebuild_variant", _failing_rebuild_for(8))
        stale = DuplicateSaleCleanup(session_factory).run()
        assert stale.outcome == RunOutcome.PROJECTION_STALE
        assert ledger.scope_quantity(8, wh) == -4

        report = HistoryRecalculator(session_factory).run()

        assert report.outcome == RunOutcome.SUCCEEDED
        assert report.movements_fixed == 0
        assert report.scopes_corrected == 1
        assert ledger.scope_quantity(8, wh) == ledger.replayed(8, wh) == -2
        assert ledger.aggregate(8) == -2
        assert DuplicateSaleCleanup(session_factory).run().outcome == RunOutcome.NOTHING_TO_DO
        assert LedgerVerification(session_factory).run().details["status"] == "passed"
