"""
Replay engine: fold a scope's movements into a total and a snapshot chain.
"""

from datetime import UTC, datetime, timedelta

from inventory_engines.replay import order_for_replay, replay_scope, replay_total
from inventory_kernel.domain.dtos import MovementSnapshot
from inventory_kernel.domain.movement_types import MovementType

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


def snap(id, quantity, minutes, before=0, after=0, mtype=MovementType.ADJUSTMENT):
    return MovementSnapshot(
        id=id,
        product_variant_id=9,
        location_id=2,
        movement_type=mtype,
        quantity=quantity,
        quantity_before=before,
        quantity_after=after,
        created_at=T0 + timedelta(minutes=minutes),
    )


class TestReplayOrder:
    """Movements fold in (created_at, id) order."""

    def test_created_at_wins_over_id(self):
        movements = [snap(1, 10, 1), snap(2, -3, 3, mtype=MovementType.SALE), snap(3, 1, 2)]
        assert [m.id for m in order_for_replay(movements)] == [1, 3, 2]

    def test_id_breaks_timestamp_ties(self):
        movements = [snap(5, 1, 0), snap(4, 1, 0)]
        assert [m.id for m in order_for_replay(movements)] == [4, 5]


class TestReplayScope:

    def test_out_of_order_timestamps_fold_chronologically(self):
        """Insertion order differs from created_at order."""
        movements = [snap(1, 10, 1), snap(2, -3, 3, mtype=MovementType.SALE), snap(3, 1, 2)]

        result = replay_scope(movements)

        assert result.final_quantity == 8
        fixed = {c.movement_id: (c.new_before, c.new_after) for c in result.corrections}
        assert fixed == {1: (0, 10), 3: (10, 11), 2: (11, 8)}

    def test_correct_chain_needs_no_corrections(self):
        movements = [snap(1, 5, 0, 0, 5), snap(2, -2, 1, 5, 3, MovementType.SALE)]

        result = replay_scope(movements)

        assert result.is_consistent
        assert result.correct_count == 2
        assert result.final_quantity == 3

    def test_only_wrong_rows_are_corrected(self):
        movements = [snap(1, 5, 0, 0, 5), snap(2, 4, 1, 99, 103)]

        result = replay_scope(movements)

        assert [c.movement_id for c in result.corrections] == [2]
        assert result.corrections[0].old_before == 99
        assert result.correct_count == 1

    def test_opening_quantity(self):
        assert replay_scope([snap(1, 2, 0)], opening=10).final_quantity == 12

    def test_empty_scope(self):
        result = replay_scope([])
        assert result.final_quantity == 0
        assert result.movements_checked == 0

    def test_replay_total_is_the_sum(self):
        assert replay_total([10, -3, 1]) == 8

    def test_second_replay_of_corrected_chain_is_clean(self):
        movements = [snap(1, 10, 1), snap(2, -3, 3, mtype=MovementType.SALE), snap(3, 1, 2)]
        first = replay_scope(movements)
        by_id = {c.movement_id: c for c in first.corrections}
        repaired = [
            snap(
                m.id, m.quantity, int((m.created_at - T0).total_seconds() // 60),
                by_id[m.id].new_before, by_id[m.id].new_after, m.movement_type,
            )
            for m in movements
        ]

        second = replay_scope(repaired)

        assert second.is_consistent
        assert second.final_quantity == first.final_quantity
