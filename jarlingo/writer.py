"""Output layout and concurrency-limited file writing."""

from __future__ import annotations

import asyncio
import json
import pathlib
from typing import Optional

from .errors import ErrorCategory
from .policy import ErrorPolicy
from .structures import ArchiveRecord, ReconstructedFile, RecordKind

PACK_DESCRIPTOR = "pack.mcmeta"
DEFAULT_PACK_FORMAT = 15
PACK_FORMAT_MAP = {
    "1.21": 34,
    "1.20.6": 32,
    "1.20.4": 22,
    "1.20.2": 18,
    "1.20.1": 15,
    "1.19.4": 13,
    "1.18.2": 9,
    "1.17.1": 7,
    "1.16.5": 6,
}


def output_path_for(record: ArchiveRecord, target_language: str) -> str:
    """Map a record's entry path to its resource pack path."""

    if record.kind is RecordKind.TREE:
        return f"{record.container}/{target_language}/{record.internal_path}"
    extension = "json" if record.kind is RecordKind.FLAT_MAP else "local"
    return f"{record.container}/{target_language}.{extension}"


def pack_format_for(minecraft_version: str) -> int:
    return PACK_FORMAT_MAP.get(minecraft_version.strip(), DEFAULT_PACK_FORMAT)


def build_pack_descriptor(
    *,
    minecraft_version: str,
    target_language: str,
    model: Optional[str],
) -> str:
    description = f"Mod Language Translations ({target_language})"
    if model:
        description += f" using {model}"
    return json.dumps(
        {
            "pack": {
                "pack_format": pack_format_for(minecraft_version),
                "description": description,
            }
        },
        ensure_ascii=False,
        indent=2,
    )


def _write_text(path: pathlib.Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


class OutputWriter:
    """Writes reconstructed files below ``root`` with bounded concurrency."""

    def __init__(
        self,
        root: pathlib.Path,
        *,
        max_concurrency: int = 15,
        policy: ErrorPolicy | None = None,
    ) -> None:
        self.root = root
        self.policy = policy or ErrorPolicy()
        self.written = 0
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))

    def resolve(self, output_path: str) -> Optional[pathlib.Path]:
        """Return the destination for ``output_path``, or None if it leaves the root."""

        destination = self.root.joinpath(*pathlib.PurePosixPath(output_path).parts)
        if not destination.resolve().is_relative_to(self.root.resolve()):
            return None
        return destination

    async def write(self, file: ReconstructedFile) -> bool:
        """Write one file; failures are reported and do not propagate."""

        destination = self.resolve(file.output_path)
        if destination is None:
            self.policy.handle_error(
                ErrorCategory.FILE_IO,
                f"Refusing to write {file.output_path} outside {self.root}.",
            )
            return False
        async with self._semaphore:
            try:
                await asyncio.to_thread(_write_text, destination, file.content)
            except OSError as exc:
                self.policy.handle_error(
                    ErrorCategory.FILE_IO,
                    f"Failed to write {destination}.",
                    details=str(exc),
                )
                return False
        self.written += 1
        return True

    def write_pack_descriptor(
        self,
        *,
        minecraft_version: str,
        target_language: str,
        model: Optional[str],
    ) -> pathlib.Path:
        """Create the output root and write ``pack.mcmeta`` into it."""

        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / PACK_DESCRIPTOR
        path.write_text(
            build_pack_descriptor(
                minecraft_version=minecraft_version,
                target_language=target_language,
                model=model,
            ),
            encoding="utf-8",
        )
        return path
