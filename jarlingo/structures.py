"""Core data structures for the jarlingo translator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Literal, Tuple, Union


Locator = Union[str, int, Tuple[Union[str, int], ...]]


class RecordKind(Enum):
    """Shapes of text-bearing files found inside an archive."""

    FLAT_MAP = "flat_map"
    LINE_FORMAT = "line_format"
    TREE = "tree"


@dataclass(frozen=True)
class ArchiveRecord:
    """One text-bearing entry reported by the archive scanner.

    ``container`` is the entry path up to (not including) the language
    segment, and ``internal_path`` is the part after it for book records.
    """

    source_archive: str
    entry_path: str
    kind: RecordKind
    namespace: str
    raw_content: str
    container: str
    internal_path: str = ""

    @property
    def location(self) -> str:
        return f"{self.source_archive}!/{self.entry_path}"


@dataclass(frozen=True)
class TextUnit:
    """A single translatable string and where it lives in its record."""

    text: str
    record_index: int
    locator: Locator


@dataclass
class Batch:
    """A contiguous slice of the flat unit list sent in one request.

    ``positions`` are the global indexes of ``units`` in the flat list.
    """

    batch_id: int
    positions: List[int]
    units: List[TextUnit]

    def __len__(self) -> int:
        return len(self.units)

    def split(self) -> Tuple["Batch", "Batch"]:
        """Split the batch at its midpoint."""

        middle = len(self.units) // 2
        return (
            Batch(self.batch_id, self.positions[:middle], self.units[:middle]),
            Batch(self.batch_id, self.positions[middle:], self.units[middle:]),
        )


@dataclass(frozen=True)
class ReconstructedFile:
    """Final file content ready to be written under the output root."""

    output_path: str
    content: str


@dataclass
class ScanMessage:
    """A message sent from a scanning worker back to the coordinator."""

    kind: Literal["records", "diagnostic", "done"]
    archive: str
    records: List[ArchiveRecord] = field(default_factory=list)
    message: str = ""
