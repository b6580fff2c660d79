"""Archive scanning in isolated worker processes.

Each archive becomes one :class:`ScanTask`. A worker runs
:func:`run_scan_task` and hands back its outbox, a list of
:class:`ScanMessage` objects ending with a ``done`` message. The coordinator
never shares state with the workers; it only reads their outboxes.
"""

from __future__ import annotations

import asyncio
import os
import pathlib
import re
import zipfile
import zlib
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Pattern, Sequence, Tuple

from .errors import ErrorCategory
from .policy import ErrorPolicy
from .structures import ArchiveRecord, RecordKind, ScanMessage

ARCHIVE_SUFFIXES = (".jar", ".zip")
DEFAULT_BOOK_ROOTS: Tuple[str, ...] = ("patchouli_books",)


@dataclass(frozen=True)
class ScanTask:
    """A dispatchable unit of scanning work for a single archive."""

    archive_path: str
    source_language: str = "en_us"
    book_roots: Tuple[str, ...] = DEFAULT_BOOK_ROOTS


def build_lang_pattern(source_language: str) -> Pattern[str]:
    """Match ``assets/<namespace>/lang/<lang>.(json|local)``."""

    return re.compile(
        r"^(?P<container>assets/(?P<namespace>[^/]+)/lang)/"
        + re.escape(source_language)
        + r"\.(?P<ext>json|local)$",
        re.IGNORECASE,
    )


def build_book_pattern(source_language: str, book_roots: Sequence[str]) -> Pattern[str]:
    """Match ``assets/<namespace>/<bookRoot>/<bookId>/<lang>/<path>.json``."""

    roots = "|".join(re.escape(root) for root in book_roots)
    return re.compile(
        r"^(?P<container>assets/(?P<namespace>[^/]+)/(?:"
        + roots
        + r")/[^/]+)/"
        + re.escape(source_language)
        + r"/(?P<internal>.+\.json)$",
        re.IGNORECASE,
    )


def is_safe_entry_path(entry_path: str) -> bool:
    """Reject absolute paths, drive letters, and empty, ``.`` or ``..`` segments."""

    if entry_path.startswith("/") or ":" in entry_path:
        return False
    return all(part not in {"", ".", ".."} for part in entry_path.split("/"))


def match_entry(
    entry_path: str,
    lang_pattern: Pattern[str],
    book_pattern: Optional[Pattern[str]],
) -> Optional[Tuple[RecordKind, str, str, str]]:
    """Classify an entry path as ``(kind, namespace, container, internal_path)``."""

    match = lang_pattern.match(entry_path)
    if match:
        kind = (
            RecordKind.FLAT_MAP
            if match.group("ext").lower() == "json"
            else RecordKind.LINE_FORMAT
        )
        return kind, match.group("namespace"), match.group("container"), ""
    if book_pattern is not None:
        match = book_pattern.match(entry_path)
        if match:
            return (
                RecordKind.TREE,
                match.group("namespace"),
                match.group("container"),
                match.group("internal"),
            )
    return None


def run_scan_task(task: ScanTask) -> List[ScanMessage]:
    """Scan one archive and return the worker's outbox."""

    archive_name = os.path.basename(task.archive_path)
    outbox: List[ScanMessage] = []
    lang_pattern = build_lang_pattern(task.source_language)
    book_pattern = (
        build_book_pattern(task.source_language, task.book_roots)
        if task.book_roots
        else None
    )

    records: List[ArchiveRecord] = []
    try:
        with zipfile.ZipFile(task.archive_path) as archive:
            for info in archive.infolist():
                if info.is_dir():
                    continue
                entry_path = info.filename.replace("\\", "/")
                classified = match_entry(entry_path, lang_pattern, book_pattern)
                if classified is None:
                    continue
                kind, namespace, container, internal_path = classified
                if not is_safe_entry_path(entry_path):
                    outbox.append(
                        ScanMessage(
                            kind="diagnostic",
                            archive=archive_name,
                            message=f"Skipping unsafe entry path {entry_path} in {archive_name}.",
                        )
                    )
                    continue
                try:
                    content = archive.read(info).decode("utf-8-sig")
                except (
                    OSError,
                    NotImplementedError,
                    RuntimeError,
                    UnicodeDecodeError,
                    zipfile.BadZipFile,
                    zlib.error,
                ) as exc:
                    outbox.append(
                        ScanMessage(
                            kind="diagnostic",
                            archive=archive_name,
                            message=f"Could not read entry {entry_path} in {archive_name}: {exc}",
                        )
                    )
                    continue
                records.append(
                    ArchiveRecord(
                        source_archive=archive_name,
                        entry_path=entry_path,
                        kind=kind,
                        namespace=namespace,
                        raw_content=content,
                        container=container,
                        internal_path=internal_path,
                    )
                )
    except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
        outbox.append(
            ScanMessage(
                kind="diagnostic",
                archive=archive_name,
                message=f"Could not open archive {archive_name}: {exc}",
            )
        )
        records = []

    if records:
        outbox.append(ScanMessage(kind="records", archive=archive_name, records=records))
    outbox.append(ScanMessage(kind="done", archive=archive_name))
    return outbox


def discover_archives(directory: pathlib.Path) -> List[pathlib.Path]:
    """Return mod archives directly inside ``directory``."""

    return sorted(
        path
        for path in directory.iterdir()
        if path.is_file() and path.suffix.lower() in ARCHIVE_SUFFIXES
    )


async def scan_archives(
    archives: Sequence[pathlib.Path],
    *,
    source_language: str,
    book_roots: Tuple[str, ...],
    max_workers: int,
    policy: ErrorPolicy,
    executor: Executor | None = None,
) -> List[ArchiveRecord]:
    """Scan every archive in parallel and collect the reported records."""

    if not archives:
        return []

    loop = asyncio.get_running_loop()
    own_executor = executor is None
    pool = executor or ProcessPoolExecutor(max_workers=max(1, max_workers))
    records: List[ArchiveRecord] = []

    async def _scan_one(path: pathlib.Path) -> List[ScanMessage]:
        task = ScanTask(
            archive_path=str(path),
            source_language=source_language,
            book_roots=book_roots,
        )
        try:
            return await loop.run_in_executor(pool, run_scan_task, task)
        except Exception as exc:
            return [
                ScanMessage(
                    kind="diagnostic",
                    archive=path.name,
                    message=f"Scanning worker for {path.name} failed: {exc}",
                ),
                ScanMessage(kind="done", archive=path.name),
            ]

    try:
        for pending in asyncio.as_completed([_scan_one(path) for path in archives]):
            for message in await pending:
                if message.kind == "records":
                    records.extend(message.records)
                elif message.kind == "diagnostic":
                    policy.handle_error(ErrorCategory.ARCHIVE, message.message)
                else:
                    policy.info(f"Finished scanning {message.archive}.")
    finally:
        if own_executor:
            pool.shutdown(wait=True)

    records.sort(key=lambda record: (record.source_archive, record.entry_path))
    return records
