"""Batch partitioning for the flat text unit list."""

from __future__ import annotations

from typing import List, Sequence

from .structures import Batch, TextUnit


class BatchBuilder:
    """Groups contiguous units into batches bounded by count and characters.

    ``max_chars`` of zero disables the character budget. A unit longer than
    the budget still travels alone in its own batch.
    """

    def __init__(self, max_units: int, max_chars: int = 0) -> None:
        self.max_units = max(1, max_units)
        self.max_chars = max(0, max_chars)

    def build(self, units: Sequence[TextUnit]) -> List[Batch]:
        batches: List[Batch] = []
        batch_positions: List[int] = []
        batch_units: List[TextUnit] = []
        running_total = 0
        batch_id = 1

        for position, unit in enumerate(units):
            size = len(unit.text)
            over_budget = (
                self.max_chars > 0
                and running_total + size > self.max_chars
            )
            if batch_units and (len(batch_units) >= self.max_units or over_budget):
                batches.append(Batch(batch_id, batch_positions, batch_units))
                batch_id += 1
                batch_positions = []
                batch_units = []
                running_total = 0

            batch_positions.append(position)
            batch_units.append(unit)
            running_total += size

        if batch_units:
            batches.append(Batch(batch_id, batch_positions, batch_units))

        return batches
