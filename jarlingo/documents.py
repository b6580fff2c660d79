"""Record parsing, text extraction and reconstruction.

Each record kind has a handler that parses the raw entry content once, lists
the translatable strings with a locator, and later rebuilds the output text
from a deep copy of the parsed structure.
"""

from __future__ import annotations

import copy
import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, List, Literal, Mapping, Tuple, Union

from .errors import RecordParseError
from .structures import ArchiveRecord, Locator, RecordKind, TextUnit

# Book fields that hold player-facing text.
TEXT_FIELDS = frozenset(
    {
        "name",
        "description",
        "title",
        "subtitle",
        "text",
        "landing_text",
        "link_text",
        "entry_title",
    }
)

LINE_SPLIT_PATTERN = re.compile(r"\r?\n")

LineKind = Literal["blank", "comment", "kv", "other"]
PathPart = Union[str, int]


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


@dataclass
class ParsedLine:
    """One line of a ``.local`` file.

    For ``kv`` lines ``prefix`` holds everything up to and including the
    separator so the key side is written back byte for byte.
    """

    kind: LineKind
    original: str
    line_number: int
    prefix: str = ""
    key: str = ""
    value: str = ""

    def render(self) -> str:
        if self.kind == "kv":
            return f"{self.prefix}{self.value}"
        return self.original


def find_separator(line: str) -> int:
    """Return the index of the first unescaped ``=``, or -1."""

    index = 0
    length = len(line)
    while index < length:
        char = line[index]
        if char == "\\":
            index += 2
            continue
        if char == "=":
            return index
        index += 1
    return -1


def parse_line(line: str, line_number: int) -> ParsedLine:
    """Classify a single line."""

    stripped = line.strip()
    if not stripped:
        return ParsedLine(kind="blank", original=line, line_number=line_number)
    if stripped.startswith("#"):
        return ParsedLine(kind="comment", original=line, line_number=line_number)

    separator = find_separator(line)
    if separator > 0:
        key = line[:separator].strip()
        if key:
            return ParsedLine(
                kind="kv",
                original=line,
                line_number=line_number,
                prefix=line[: separator + 1],
                key=key,
                value=line[separator + 1 :],
            )
    return ParsedLine(kind="other", original=line, line_number=line_number)


def parse_line_format(content: str) -> List[ParsedLine]:
    """Split ``.local`` content on either line-ending convention."""

    return [
        parse_line(line, number)
        for number, line in enumerate(LINE_SPLIT_PATTERN.split(content), start=1)
    ]


def render_line_format(lines: Iterable[ParsedLine]) -> str:
    """Join lines back together with ``\\n`` endings."""

    return "\n".join(line.render() for line in lines)


def dump_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


def _load_json(content: str, record: ArchiveRecord) -> Any:
    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        raise RecordParseError(f"Invalid JSON in {record.location}: {exc}") from exc


class BaseRecordHandler(ABC):
    """Common base class for record handlers."""

    kind: RecordKind

    def __init__(self, record: ArchiveRecord, record_index: int) -> None:
        self.record = record
        self.record_index = record_index
        self.structure = self.parse(record.raw_content)
        self.units: List[TextUnit] = []

    @abstractmethod
    def parse(self, content: str) -> Any:
        """Parse raw entry content, raising :class:`RecordParseError`."""

    @abstractmethod
    def extract_text_units(self) -> List[TextUnit]:
        """Extract translation-ready text units."""

    @abstractmethod
    def apply(self, structure: Any, locator: Locator, value: str) -> None:
        """Write ``value`` at ``locator`` inside ``structure``."""

    @abstractmethod
    def serialize(self, structure: Any) -> str:
        """Render a structure to its output text."""

    def register_units(self, units: Iterable[TextUnit]) -> List[TextUnit]:
        """Store and return the provided units."""

        self.units = list(units)
        return self.units

    def reconstruct(self, resolved: Mapping[Locator, str]) -> str:
        """Apply resolved values to a copy of the parsed structure."""

        structure = copy.deepcopy(self.structure)
        for locator, value in resolved.items():
            self.apply(structure, locator, value)
        return self.serialize(structure)

    def _unit(self, text: str, locator: Locator) -> TextUnit:
        return TextUnit(text=text, record_index=self.record_index, locator=locator)


class FlatMapHandler(BaseRecordHandler):
    """``lang/<code>.json`` files: a flat key to string object."""

    kind = RecordKind.FLAT_MAP

    def parse(self, content: str) -> dict:
        data = _load_json(content, self.record)
        if not isinstance(data, dict):
            raise RecordParseError(
                f"Expected a JSON object at the root of {self.record.location}."
            )
        return data

    def extract_text_units(self) -> List[TextUnit]:
        return self.register_units(
            self._unit(value, key)
            for key, value in self.structure.items()
            if _is_text(value)
        )

    def apply(self, structure: dict, locator: Locator, value: str) -> None:
        if isinstance(locator, str) and locator in structure:
            structure[locator] = value

    def serialize(self, structure: dict) -> str:
        return dump_json(structure)


class LineFormatHandler(BaseRecordHandler):
    """``lang/<code>.local`` files: ``key=value`` lines with comments."""

    kind = RecordKind.LINE_FORMAT

    def parse(self, content: str) -> List[ParsedLine]:
        return parse_line_format(content)

    def extract_text_units(self) -> List[TextUnit]:
        return self.register_units(
            self._unit(line.value, line.line_number)
            for line in self.structure
            if line.kind == "kv" and _is_text(line.value)
        )

    def apply(self, structure: List[ParsedLine], locator: Locator, value: str) -> None:
        if not isinstance(locator, int) or not 1 <= locator <= len(structure):
            return
        line = structure[locator - 1]
        if line.kind == "kv":
            line.value = value

    def serialize(self, structure: List[ParsedLine]) -> str:
        return render_line_format(structure)


class TreeHandler(BaseRecordHandler):
    """Documentation book pages: nested JSON with known text fields."""

    kind = RecordKind.TREE

    def parse(self, content: str) -> Any:
        data = _load_json(content, self.record)
        if not isinstance(data, (dict, list)):
            raise RecordParseError(
                f"Expected a JSON object or array at the root of {self.record.location}."
            )
        return data

    def extract_text_units(self) -> List[TextUnit]:
        units: List[TextUnit] = []
        self._walk(self.structure, (), units)
        return self.register_units(units)

    def _walk(self, node: Any, path: Tuple[PathPart, ...], units: List[TextUnit]) -> None:
        if isinstance(node, dict):
            for key, value in node.items():
                if key in TEXT_FIELDS and _is_text(value):
                    units.append(self._unit(value, path + (key,)))
                elif isinstance(value, (dict, list)):
                    self._walk(value, path + (key,), units)
        elif isinstance(node, list):
            for index, value in enumerate(node):
                if isinstance(value, (dict, list)):
                    self._walk(value, path + (index,), units)

    def apply(self, structure: Any, locator: Locator, value: str) -> None:
        if not isinstance(locator, tuple) or not locator:
            return
        parent = structure
        for part in locator[:-1]:
            parent = _child(parent, part)
            if parent is None:
                return
        last = locator[-1]
        if isinstance(parent, dict) and isinstance(parent.get(last), str):
            parent[last] = value
        elif (
            isinstance(parent, list)
            and isinstance(last, int)
            and 0 <= last < len(parent)
            and isinstance(parent[last], str)
        ):
            parent[last] = value

    def serialize(self, structure: Any) -> str:
        return dump_json(structure)


def _child(node: Any, part: PathPart) -> Any:
    if isinstance(node, dict) and isinstance(part, str):
        return node.get(part)
    if isinstance(node, list) and isinstance(part, int) and 0 <= part < len(node):
        return node[part]
    return None


HANDLERS = {
    RecordKind.FLAT_MAP: FlatMapHandler,
    RecordKind.LINE_FORMAT: LineFormatHandler,
    RecordKind.TREE: TreeHandler,
}


def detect_handler(record: ArchiveRecord, record_index: int) -> BaseRecordHandler:
    """Build the handler for a record, parsing its content."""

    return HANDLERS[record.kind](record, record_index)
