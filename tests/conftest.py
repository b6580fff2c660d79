"""Shared pytest fixtures for jarlingo tests."""

from __future__ import annotations

import json
import zipfile
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Union

import pytest

from jarlingo.structures import ArchiveRecord, RecordKind

EntryContent = Union[str, bytes]

SAMPLE_LANG_JSON = {
    "item.examplemod.ruby": "Ruby",
    "item.examplemod.ruby.tooltip": "A shiny %s gem",
    "block.examplemod.empty": "",
    "examplemod.config.count": 3,
}

SAMPLE_LOCAL = (
    "# Example mod strings\n"
    "\n"
    "greeting=Hello %s!\n"
    "farewell = Goodbye\n"
    "empty.value=\n"
    "not a key value line\n"
)

SAMPLE_BOOK_ENTRY = {
    "name": "Getting Started",
    "icon": "examplemod:ruby",
    "category": "examplemod:basics",
    "pages": [
        {"type": "patchouli:text", "text": "Welcome to the mod."},
        {"type": "patchouli:spotlight", "item": "examplemod:ruby", "title": "Rubies"},
    ],
}


@pytest.fixture
def make_archive(tmp_path: Path) -> Callable[..., Path]:
    """Factory fixture that writes a zip archive with the given entries.

    Usage:
        def test_something(make_archive):
            path = make_archive("mod.jar", {"assets/x/lang/en_us.json": "{}"})
    """

    def _make(
        name: str,
        entries: Mapping[str, EntryContent],
        directory: Path | None = None,
    ) -> Path:
        target_dir = directory or (tmp_path / "mods")
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        with zipfile.ZipFile(path, "w") as archive:
            for entry_name, content in entries.items():
                data = content.encode("utf-8") if isinstance(content, str) else content
                archive.writestr(entry_name, data)
        return path

    return _make


@pytest.fixture
def example_mod_entries() -> Dict[str, str]:
    """Entries of a typical mod archive with all three record kinds."""
    return {
        "META-INF/MANIFEST.MF": "Manifest-Version: 1.0\n",
        "assets/examplemod/lang/en_us.json": json.dumps(SAMPLE_LANG_JSON, indent=2),
        "assets/examplemod/lang/de_de.json": json.dumps({"item.examplemod.ruby": "Rubin"}),
        "assets/examplemod/lang/en_us.local": SAMPLE_LOCAL,
        "assets/examplemod/patchouli_books/guide/en_us/entries/basics/start.json": json.dumps(
            SAMPLE_BOOK_ENTRY, indent=2
        ),
        "assets/examplemod/textures/item/ruby.png": "not really a png",
    }


@pytest.fixture
def make_record() -> Callable[..., ArchiveRecord]:
    """Factory fixture for in-memory archive records."""

    def _make(
        kind: RecordKind,
        content: Any,
        *,
        archive: str = "examplemod.jar",
        namespace: str = "examplemod",
    ) -> ArchiveRecord:
        if not isinstance(content, str):
            content = json.dumps(content, indent=2)
        if kind is RecordKind.TREE:
            entry_path = f"assets/{namespace}/patchouli_books/guide/en_us/entries/start.json"
            container = f"assets/{namespace}/patchouli_books/guide"
            internal_path = "entries/start.json"
        else:
            extension = "json" if kind is RecordKind.FLAT_MAP else "local"
            entry_path = f"assets/{namespace}/lang/en_us.{extension}"
            container = f"assets/{namespace}/lang"
            internal_path = ""
        return ArchiveRecord(
            source_archive=archive,
            entry_path=entry_path,
            kind=kind,
            namespace=namespace,
            raw_content=content,
            container=container,
            internal_path=internal_path,
        )

    return _make
