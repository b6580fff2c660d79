"""Unit tests for record parsing, extraction and reconstruction."""

from __future__ import annotations

import json

import pytest

from jarlingo.documents import (
    FlatMapHandler,
    LineFormatHandler,
    TreeHandler,
    detect_handler,
    find_separator,
    parse_line,
    parse_line_format,
)
from jarlingo.errors import RecordParseError
from jarlingo.structures import RecordKind


def _identity(handler) -> dict:
    """Resolve every unit to its own text."""
    return {unit.locator: unit.text for unit in handler.extract_text_units()}


# =============================================================================
# LINE FORMAT
# =============================================================================


class TestLineClassification:
    """Tests for classifying individual .local lines."""

    @pytest.mark.unit
    def test_blank_and_whitespace_lines(self) -> None:
        assert parse_line("", 1).kind == "blank"
        assert parse_line("   \t", 2).kind == "blank"

    @pytest.mark.unit
    def test_comment_after_indentation(self) -> None:
        assert parse_line("   # note", 1).kind == "comment"

    @pytest.mark.unit
    def test_key_value_line(self) -> None:
        line = parse_line("greeting=Hello %s!", 3)
        assert line.kind == "kv"
        assert line.key == "greeting"
        assert line.value == "Hello %s!"
        assert line.line_number == 3

    @pytest.mark.unit
    def test_separator_at_line_start_is_not_key_value(self) -> None:
        assert parse_line("=orphan value", 1).kind == "other"

    @pytest.mark.unit
    def test_blank_key_is_not_key_value(self) -> None:
        assert parse_line("   =value", 1).kind == "other"

    @pytest.mark.unit
    def test_line_without_separator_is_passthrough(self) -> None:
        assert parse_line("just some words", 1).kind == "other"

    @pytest.mark.unit
    def test_escaped_separator_is_skipped(self) -> None:
        line = parse_line(r"a\=b=value", 1)
        assert line.kind == "kv"
        assert line.key == r"a\=b"
        assert line.value == "value"

    @pytest.mark.unit
    def test_find_separator_without_unescaped_equals(self) -> None:
        assert find_separator(r"only\=escaped") == -1

    @pytest.mark.unit
    def test_value_may_contain_further_separators(self) -> None:
        line = parse_line("formula=a=b", 1)
        assert line.value == "a=b"

    @pytest.mark.unit
    def test_crlf_and_lf_both_split(self) -> None:
        lines = parse_line_format("a=1\r\nb=2\nc=3")
        assert [line.key for line in lines] == ["a", "b", "c"]
        assert [line.line_number for line in lines] == [1, 2, 3]


class TestLineFormatHandler:
    """Tests for .local extraction and reconstruction."""

    @pytest.mark.unit
    def test_greeting_example_round_trip(self, make_record) -> None:
        handler = LineFormatHandler(make_record(RecordKind.LINE_FORMAT, "greeting=Hello %s!"), 0)
        assert handler.reconstruct(_identity(handler)) == "greeting=Hello %s!"

    @pytest.mark.unit
    def test_comments_and_blank_lines_kept_in_place(self, make_record) -> None:
        content = "# note\n\ngreeting=Hello\n\n# end\n"
        handler = LineFormatHandler(make_record(RecordKind.LINE_FORMAT, content), 0)
        units = handler.extract_text_units()

        assert [(unit.locator, unit.text) for unit in units] == [(3, "Hello")]
        output = handler.reconstruct({3: "Hallo"})
        assert output == "# note\n\ngreeting=Hallo\n\n# end\n"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "content",
        [
            "greeting=Hello %s!",
            "# header\n\nkey = spaced value \nbroken line\n=lead\n",
            "a=1\n\n\n#c\nb=two words\n",
            "trailing.blank=\n   \nk\\=x=escaped\n",
        ],
    )
    def test_identity_round_trip_is_byte_identical(self, make_record, content: str) -> None:
        handler = LineFormatHandler(make_record(RecordKind.LINE_FORMAT, content), 0)
        assert handler.reconstruct(_identity(handler)) == content

    @pytest.mark.unit
    def test_crlf_input_is_normalised_to_lf(self, make_record) -> None:
        handler = LineFormatHandler(make_record(RecordKind.LINE_FORMAT, "a=1\r\nb=2\r\n"), 0)
        assert handler.reconstruct(_identity(handler)) == "a=1\nb=2\n"

    @pytest.mark.unit
    def test_empty_values_are_not_extracted(self, make_record) -> None:
        handler = LineFormatHandler(make_record(RecordKind.LINE_FORMAT, "a=\nb=   \nc=x"), 0)
        assert [unit.locator for unit in handler.extract_text_units()] == [3]

    @pytest.mark.unit
    def test_key_spacing_survives_translation(self, make_record) -> None:
        handler = LineFormatHandler(make_record(RecordKind.LINE_FORMAT, "farewell = Goodbye"), 0)
        assert handler.reconstruct({1: " Adieu"}) == "farewell = Adieu"

    @pytest.mark.unit
    def test_locator_on_non_kv_line_is_ignored(self, make_record) -> None:
        handler = LineFormatHandler(make_record(RecordKind.LINE_FORMAT, "# c\na=1"), 0)
        assert handler.reconstruct({1: "oops", 99: "nope"}) == "# c\na=1"


# =============================================================================
# FLAT MAP
# =============================================================================


class TestFlatMapHandler:
    """Tests for lang/<code>.json records."""

    @pytest.mark.unit
    def test_extracts_only_non_blank_strings(self, make_record) -> None:
        data = {"a": "Alpha", "b": "", "c": "   ", "d": 4, "e": None, "f": ["x"]}
        handler = FlatMapHandler(make_record(RecordKind.FLAT_MAP, data), 2)
        units = handler.extract_text_units()

        assert [(unit.locator, unit.text) for unit in units] == [("a", "Alpha")]
        assert units[0].record_index == 2

    @pytest.mark.unit
    def test_every_key_survives_and_non_strings_unchanged(self, make_record) -> None:
        data = {"z": "Zed", "a": "", "m": 7, "n": {"nested": "kept"}}
        handler = FlatMapHandler(make_record(RecordKind.FLAT_MAP, data), 0)
        output = json.loads(handler.reconstruct({"z": "Zett"}))

        assert list(output) == ["z", "a", "m", "n"]
        assert output == {"z": "Zett", "a": "", "m": 7, "n": {"nested": "kept"}}

    @pytest.mark.unit
    def test_reconstruct_does_not_mutate_parsed_original(self, make_record) -> None:
        handler = FlatMapHandler(make_record(RecordKind.FLAT_MAP, {"a": "Alpha"}), 0)
        handler.reconstruct({"a": "Alfa"})
        assert handler.structure == {"a": "Alpha"}

    @pytest.mark.unit
    def test_unknown_key_creates_nothing(self, make_record) -> None:
        handler = FlatMapHandler(make_record(RecordKind.FLAT_MAP, {"a": "Alpha"}), 0)
        assert json.loads(handler.reconstruct({"b": "Beta"})) == {"a": "Alpha"}

    @pytest.mark.unit
    def test_non_ascii_output_is_not_escaped(self, make_record) -> None:
        handler = FlatMapHandler(make_record(RecordKind.FLAT_MAP, {"a": "Ruby"}), 0)
        assert "ルビー" in handler.reconstruct({"a": "ルビー"})

    @pytest.mark.unit
    def test_invalid_json_raises_parse_error(self, make_record) -> None:
        with pytest.raises(RecordParseError, match="Invalid JSON"):
            FlatMapHandler(make_record(RecordKind.FLAT_MAP, "{not json"), 0)

    @pytest.mark.unit
    def test_non_object_root_raises_parse_error(self, make_record) -> None:
        with pytest.raises(RecordParseError, match="JSON object"):
            FlatMapHandler(make_record(RecordKind.FLAT_MAP, "[1, 2]"), 0)


# =============================================================================
# TREE
# =============================================================================


class TestTreeHandler:
    """Tests for documentation book records."""

    @pytest.mark.unit
    def test_only_allow_listed_fields_are_extracted(self, make_record) -> None:
        data = {
            "name": "Getting Started",
            "icon": "examplemod:ruby",
            "pages": [
                {"type": "patchouli:text", "text": "Welcome."},
                {"type": "patchouli:spotlight", "item": "examplemod:ruby", "title": "Rubies"},
            ],
        }
        handler = TreeHandler(make_record(RecordKind.TREE, data), 0)
        units = handler.extract_text_units()

        assert [(unit.locator, unit.text) for unit in units] == [
            (("name",), "Getting Started"),
            (("pages", 0, "text"), "Welcome."),
            (("pages", 1, "title"), "Rubies"),
        ]

    @pytest.mark.unit
    def test_allow_listed_key_with_container_value_is_walked(self, make_record) -> None:
        data = {"text": {"name": "Inner"}, "description": ["not", "extracted"]}
        handler = TreeHandler(make_record(RecordKind.TREE, data), 0)
        assert [unit.locator for unit in handler.extract_text_units()] == [("text", "name")]

    @pytest.mark.unit
    def test_apply_by_path_keeps_other_fields(self, make_record) -> None:
        data = {"name": "Guide", "pages": [{"type": "t", "text": "Hello"}]}
        handler = TreeHandler(make_record(RecordKind.TREE, data), 0)
        output = json.loads(
            handler.reconstruct({("name",): "ガイド", ("pages", 0, "text"): "こんにちは"})
        )

        assert output == {"name": "ガイド", "pages": [{"type": "t", "text": "こんにちは"}]}
        assert handler.structure["pages"][0]["text"] == "Hello"

    @pytest.mark.unit
    def test_missing_path_creates_no_structure(self, make_record) -> None:
        data = {"pages": []}
        handler = TreeHandler(make_record(RecordKind.TREE, data), 0)
        assert json.loads(handler.reconstruct({("pages", 0, "text"): "x"})) == {"pages": []}

    @pytest.mark.unit
    def test_scalar_root_raises_parse_error(self, make_record) -> None:
        with pytest.raises(RecordParseError):
            TreeHandler(make_record(RecordKind.TREE, '"just a string"'), 0)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("kind", "expected"),
    [
        (RecordKind.FLAT_MAP, FlatMapHandler),
        (RecordKind.LINE_FORMAT, LineFormatHandler),
        (RecordKind.TREE, TreeHandler),
    ],
)
def test_detect_handler_picks_by_kind(make_record, kind, expected) -> None:
    content = "a=b" if kind is RecordKind.LINE_FORMAT else {"name": "x"}
    assert isinstance(detect_handler(make_record(kind, content), 0), expected)
