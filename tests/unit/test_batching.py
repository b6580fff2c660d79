"""Unit tests for batch partitioning."""

from __future__ import annotations

from typing import List

import pytest

from jarlingo.batching import BatchBuilder
from jarlingo.structures import Batch, TextUnit


def _units(*texts: str) -> List[TextUnit]:
    return [TextUnit(text=text, record_index=0, locator=index) for index, text in enumerate(texts)]


class TestBatchBuilder:
    """Tests for grouping units by count and character budget."""

    @pytest.mark.unit
    def test_splits_by_unit_count(self) -> None:
        batches = BatchBuilder(max_units=2).build(_units("a", "b", "c", "d", "e"))

        assert [batch.positions for batch in batches] == [[0, 1], [2, 3], [4]]
        assert [batch.batch_id for batch in batches] == [1, 2, 3]

    @pytest.mark.unit
    def test_empty_input_yields_no_batches(self) -> None:
        assert BatchBuilder(max_units=10).build([]) == []

    @pytest.mark.unit
    def test_character_budget_closes_batch_early(self) -> None:
        batches = BatchBuilder(max_units=10, max_chars=6).build(_units("abc", "def", "g"))
        assert [batch.positions for batch in batches] == [[0, 1], [2]]

    @pytest.mark.unit
    def test_oversized_unit_travels_alone(self) -> None:
        batches = BatchBuilder(max_units=10, max_chars=4).build(
            _units("ab", "a much longer string", "cd")
        )
        assert [batch.positions for batch in batches] == [[0], [1], [2]]

    @pytest.mark.unit
    def test_zero_budget_disables_character_limit(self) -> None:
        batches = BatchBuilder(max_units=3, max_chars=0).build(_units("x" * 500, "y" * 500))
        assert len(batches) == 1

    @pytest.mark.unit
    def test_non_positive_unit_limit_is_clamped(self) -> None:
        batches = BatchBuilder(max_units=0).build(_units("a", "b"))
        assert [len(batch) for batch in batches] == [1, 1]

    @pytest.mark.unit
    @pytest.mark.parametrize("max_units", [1, 3, 7, 100])
    def test_every_position_appears_once_in_order(self, max_units: int) -> None:
        units = _units(*(f"text {index}" for index in range(20)))
        batches = BatchBuilder(max_units=max_units, max_chars=25).build(units)

        flattened = [position for batch in batches for position in batch.positions]
        assert flattened == list(range(20))


class TestBatchSplit:
    """Tests for halving a batch."""

    @pytest.mark.unit
    def test_split_at_midpoint_keeps_id(self) -> None:
        batch = Batch(4, [10, 11, 12, 13, 14], _units("a", "b", "c", "d", "e"))
        left, right = batch.split()

        assert left.positions == [10, 11]
        assert right.positions == [12, 13, 14]
        assert left.batch_id == right.batch_id == 4
        assert [unit.text for unit in left.units + right.units] == ["a", "b", "c", "d", "e"]
