"""High-level orchestration for resource pack translation."""

from __future__ import annotations

import asyncio
import os
import pathlib
import time
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .cache import CacheIdentity, ContentCache, NullCache
from .dispatcher import BatchDispatcher
from .documents import BaseRecordHandler, detect_handler
from .errors import (
    ErrorCategory,
    FatalProviderError,
    NoArchivesFoundError,
    RecordParseError,
)
from .policy import ErrorPolicy
from .providers import PROMPT_VERSION, TranslationProvider
from .scanner import DEFAULT_BOOK_ROOTS, discover_archives, scan_archives
from .structures import ArchiveRecord, Locator, ReconstructedFile, TextUnit
from .writer import OutputWriter, output_path_for


@dataclass
class PipelineConfig:
    """Every setting a pipeline run needs, passed in explicitly."""

    source_dir: pathlib.Path
    output_dir: pathlib.Path
    source_language: str = "en_us"
    target_language: str = "ja_jp"
    language_name: str = "Japanese"
    provider_name: str = "openai"
    model: Optional[str] = None
    batch_size: int = 100
    batch_chars: int = 0
    max_split_depth: int = 4
    max_workers: int = field(default_factory=lambda: os.cpu_count() or 1)
    max_api_calls: int = 5
    max_writes: int = 15
    request_delay: float = 0.05
    cache_dir: Optional[pathlib.Path] = None
    prompt_version: str = PROMPT_VERSION
    minecraft_version: str = "1.20.1"
    book_roots: Tuple[str, ...] = DEFAULT_BOOK_ROOTS
    require_archives: bool = True
    verbose: bool = False


@dataclass
class RunSummary:
    """Report returned after a pipeline run."""

    source_dir: pathlib.Path
    output_dir: pathlib.Path
    archives_found: int
    records_found: int
    records_processed: int
    cache_hits: int
    skipped_records: int
    total_units: int
    translated_units: int
    fallback_units: int
    total_batches: int
    remote_calls: int
    files_written: int
    provider_name: str
    model: Optional[str]
    source_language: str
    target_language: str
    elapsed_seconds: float
    aborted: bool = False
    abort_reason: Optional[str] = None
    error_messages: List[str] = field(default_factory=list)


@dataclass
class _RecordState:
    """Translation progress of one record that missed the cache."""

    handler: BaseRecordHandler
    identity: CacheIdentity
    pending: int
    resolved: Dict[Locator, str] = field(default_factory=dict)


class TranslationPipeline:
    """Coordinates scanning, extraction, dispatch, caching and writing."""

    def __init__(
        self,
        config: PipelineConfig,
        provider: TranslationProvider,
        *,
        policy: ErrorPolicy | None = None,
        cache: ContentCache | NullCache | None = None,
        executor: Executor | None = None,
    ) -> None:
        self.config = config
        self.provider = provider
        self.policy = policy or ErrorPolicy(verbose=config.verbose)
        if cache is None:
            cache = (
                ContentCache(config.cache_dir, policy=self.policy)
                if config.cache_dir is not None
                else NullCache()
            )
        self.cache = cache
        self.executor = executor
        self.records_processed = 0

    def run(self) -> RunSummary:
        return asyncio.run(self.arun())

    async def arun(self) -> RunSummary:
        config = self.config
        start_time = time.time()
        self.records_processed = 0

        writer = OutputWriter(
            config.output_dir,
            max_concurrency=config.max_writes,
            policy=self.policy,
        )
        writer.write_pack_descriptor(
            minecraft_version=config.minecraft_version,
            target_language=config.target_language,
            model=self.provider.model,
        )

        archives = discover_archives(config.source_dir)
        self.policy.info(f"Found {len(archives)} archives in {config.source_dir}.")
        if not archives and config.require_archives:
            raise NoArchivesFoundError(
                f"No .jar or .zip archives were found in {config.source_dir}."
            )

        records = await scan_archives(
            archives,
            source_language=config.source_language,
            book_roots=config.book_roots,
            max_workers=config.max_workers,
            policy=self.policy,
            executor=self.executor,
        )
        self.policy.info(f"Collected {len(records)} language files.")
        records_found = len(records)
        records = self._claim_output_paths(records)

        identities = [self._identity(record) for record in records]
        cached_contents = await asyncio.gather(
            *(self.cache.lookup(identity) for identity in identities)
        )

        finalize_tasks: List[asyncio.Task] = []
        states: Dict[int, _RecordState] = {}
        units: List[TextUnit] = []
        cache_hits = 0
        skipped = records_found - len(records)

        for index, (record, identity, cached) in enumerate(
            zip(records, identities, cached_contents)
        ):
            if cached is not None:
                cache_hits += 1
                finalize_tasks.append(
                    asyncio.create_task(self._write_cached(writer, record, cached))
                )
                continue
            try:
                handler = detect_handler(record, index)
                record_units = handler.extract_text_units()
            except RecordParseError as exc:
                skipped += 1
                self.policy.handle_error(
                    ErrorCategory.PARSE,
                    f"Skipping {record.location}: {exc}",
                )
                continue
            state = _RecordState(handler=handler, identity=identity, pending=len(record_units))
            states[index] = state
            units.extend(record_units)
            if not record_units:
                finalize_tasks.append(asyncio.create_task(self._finalize(writer, state)))

        self.policy.info(
            f"{cache_hits} files served from cache; "
            f"{len(units)} strings to translate from {len(states)} files."
        )

        def _on_resolved(resolved: Dict[int, str]) -> None:
            for position, value in resolved.items():
                unit = units[position]
                state = states[unit.record_index]
                state.resolved[unit.locator] = value
                state.pending -= 1
                if state.pending == 0:
                    finalize_tasks.append(
                        asyncio.create_task(self._finalize(writer, state))
                    )

        dispatcher = BatchDispatcher(
            self.provider,
            target_language=config.target_language,
            batch_size=config.batch_size,
            batch_chars=config.batch_chars,
            max_split_depth=config.max_split_depth,
            max_concurrency=config.max_api_calls,
            request_delay=config.request_delay,
            policy=self.policy,
        )

        aborted = False
        abort_reason: Optional[str] = None
        try:
            await dispatcher.dispatch(units, on_resolved=_on_resolved)
        except FatalProviderError as exc:
            aborted = True
            abort_reason = str(exc)
        finally:
            # Records resolved before an abort are still written.
            await asyncio.gather(*finalize_tasks)

        stats = dispatcher.stats
        return RunSummary(
            source_dir=config.source_dir,
            output_dir=config.output_dir,
            archives_found=len(archives),
            records_found=records_found,
            records_processed=self.records_processed,
            cache_hits=cache_hits,
            skipped_records=skipped,
            total_units=len(units),
            translated_units=stats.translated_units,
            fallback_units=stats.fallback_units,
            total_batches=stats.batches,
            remote_calls=stats.remote_calls,
            files_written=writer.written,
            provider_name=self.provider.name,
            model=self.provider.model,
            source_language=config.source_language,
            target_language=config.target_language,
            elapsed_seconds=time.time() - start_time,
            aborted=aborted,
            abort_reason=abort_reason,
            error_messages=self.policy.messages,
        )

    def _claim_output_paths(self, records: List[ArchiveRecord]) -> List[ArchiveRecord]:
        """Keep the first record for each output path and report the rest."""

        owners: Dict[str, ArchiveRecord] = {}
        kept: List[ArchiveRecord] = []
        for record in records:
            output_path = output_path_for(record, self.config.target_language)
            owner = owners.setdefault(output_path, record)
            if owner is not record:
                self.policy.handle_error(
                    ErrorCategory.FILE_IO,
                    f"Skipping {record.location}: {output_path} is already "
                    f"produced by {owner.location}.",
                )
                continue
            kept.append(record)
        return kept

    def _identity(self, record: ArchiveRecord) -> CacheIdentity:
        return CacheIdentity(
            source_archive=record.source_archive,
            entry_path=record.entry_path,
            target_language=self.config.target_language,
            prompt_version=self.config.prompt_version,
        )

    async def _write_cached(
        self,
        writer: OutputWriter,
        record: ArchiveRecord,
        content: str,
    ) -> None:
        self.records_processed += 1
        await writer.write(
            ReconstructedFile(
                output_path=output_path_for(record, self.config.target_language),
                content=content,
            )
        )

    async def _finalize(self, writer: OutputWriter, state: _RecordState) -> None:
        record = state.handler.record
        content = state.handler.reconstruct(state.resolved)
        await self.cache.store(state.identity, content)
        self.records_processed += 1
        await writer.write(
            ReconstructedFile(
                output_path=output_path_for(record, self.config.target_language),
                content=content,
            )
        )
