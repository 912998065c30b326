"""
Run lifecycle shared by every reconciliation routine.

idle -> scanning -> reported (dry run) | confirming -> mutating
[-> recomputing] -> idle, with the outcome recorded on the report.
"""

import pytest

from inventory_config import get_active_config
from inventory_config.schema import ReconciliationConfig
from inventory_kernel.domain.movement_types import MovementType
from inventory_services import ROUTINES, build_routine
from inventory_services.reconciliation import (
    DuplicateSaleCleanup,
    NullLocationMigration,
    ReconciliationReport,
    RunOutcome,
    RunState,
    bounded,
)


@pytest.fixture
def wh(ledger):
    return ledger.add_location("WH", is_default=True)


@pytest.fixture
def duplicate(legacy_ledger, wh):
    for _ in range(2):
        legacy_ledger.movement(7, wh, MovementType.SALE, -2, order_id=1, update_projection=True)


def transitions(logs):
    return [
        (r["from_state"], r["to_state"])
        for r in logs
        if r["message"] == "reconciliation_state"
    ]


class TestStateMachine:

    def test_apply_walks_every_state(self, session_factory, duplicate, captured_logs):
        routine = DuplicateSaleCleanup(session_factory)

        routine.run()

        assert transitions(captured_logs()) == [
            ("idle", "scanning"),
            ("scanning", "confirming"),
            ("confirming", "mutating"),
            ("mutating", "recomputing"),
            ("recomputing", "idle"),
        ]
        assert routine.state == RunState.IDLE

    def test_dry_run_stops_at_reported(self, session_factory, duplicate, captured_logs):
        DuplicateSaleCleanup(session_factory).run(dry_run=True)

        assert transitions(captured_logs()) == [
            ("idle", "scanning"),
            ("scanning", "reported"),
            ("reported", "idle"),
        ]

    def test_logs_carry_run_id(self, session_factory, duplicate, captured_logs):
        report = DuplicateSaleCleanup(session_factory).run(dry_run=True)

        started = next(r for r in captured_logs() if r["message"] == "reconciliation_started")
        completed = next(r for r in captured_logs() if r["message"] == "reconciliation_completed")
        assert started["run_id"] == report.run_id
        assert started["routine"] == "cleanup-duplicates"
        assert completed["outcome"] == "dry_run"


class TestConfirmation:

    def test_declined_confirmation_mutates_nothing(
        self, ledger, session_factory, wh, duplicate, captured_logs
    ):
        seen = []

        def decline(report):
            seen.append(report.details["movements_to_delete"])
            return False

        report = DuplicateSaleCleanup(session_factory).run(confirm=decline)

        assert seen == [1]
        assert report.outcome == RunOutcome.ABORTED
        assert report.error_code == "RECONCILIATION_ABORTED"
        assert ledger.movement_count(MovementType.SALE) == 2
        assert ledger.scope_quantity(7, wh) == -4
        assert any(r["message"] == "reconciliation_aborted" for r in captured_logs())

    def test_accepted_confirmation_applies(self, ledger, session_factory, duplicate):
        report = DuplicateSaleCleanup(session_factory).run(confirm=lambda r: True)

        assert report.outcome == RunOutcome.SUCCEEDED
        assert ledger.movement_count(MovementType.SALE) == 1

    def test_confirm_not_called_when_nothing_to_do(self, session_factory, wh):
        def explode(report):
            raise AssertionError("confirm called")

        report = DuplicateSaleCleanup(session_factory).run(confirm=explode)

        assert report.outcome == RunOutcome.NOTHING_TO_DO


class TestReport:

    def test_to_dict_shape(self, session_factory, duplicate):
        data = DuplicateSaleCleanup(session_factory).run().to_dict()

        assert data["routine"] == "cleanup-duplicates"
        assert data["outcome"] == "succeeded"
        assert data["counts"]["movements_deleted"] == 1
        assert data["counts"]["variants_recomputed"] == 1
        assert data["failures"] == []
        assert data["failures_total"] == 0
        assert data["error_code"] is None

    def test_failure_preview_is_bounded(self):
        report = ReconciliationReport(routine="x", dry_run=False, preview_limit=2)
        for i in range(5):
            report.record_failure(f"unit {i}", ValueError("bad"))

        assert report.errors == 5
        assert [f.unit for f in report.failure_preview] == ["unit 0", "unit 1"]
        assert report.preview_note == "showing first 2 of 5"
        assert len(report.to_dict()["failures"]) == 2
        assert report.to_dict()["failures_total"] == 5

    def test_failure_uses_error_code(self, ledger, legacy_ledger, session_factory):
        legacy_ledger.movement(3, None, MovementType.PURCHASE_RECEIVED, 1)

        report = NullLocationMigration(session_factory).run()

        assert report.error_code == "NO_LOCATION_CONFIGURED"
        assert report.to_dict()["outcome"] == "failed"

    def test_bounded_helper(self):
        assert bounded([1, 2, 3], 2) == {"items": [1, 2], "total": 3}

    def test_preview_limit_from_config(self, session_factory, legacy_ledger, wh):
        for order_id in range(1, 5):
            for _ in range(2):
                legacy_ledger.movement(7, wh, MovementType.SALE, -1, order_id=order_id)
        config = ReconciliationConfig(failure_preview_limit=3)

        report = DuplicateSaleCleanup(session_factory, config=config).run(dry_run=True)

        assert report.details["groups"]["total"] == 4
        assert len(report.details["groups"]["items"]) == 3


class TestRoutineRegistry:

    def test_every_routine_is_registered(self):
        assert set(ROUTINES) == {
            "cleanup-duplicates",
            "fix-null-locations",
            "remove-cancelled-movements",
            "remove-duplicate-restorations",
            "recalculate-history",
            "process-cancellations",
            "process-returns",
            "verify",
        }

    def test_build_routine_wires_config(self, session_factory):
        config = get_active_config(environ={"INVENTORY_RESTORATION_POLICY": "keep_return"})

        routine = build_routine("remove-duplicate-restorations", session_factory, config)

        assert routine.policy.value == "keep_return"

    def test_unknown_routine(self, session_factory):
        with pytest.raises(KeyError):
            build_routine("nope", session_factory, get_active_config(environ={}))
