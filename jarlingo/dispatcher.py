"""Adaptive batch dispatch with shrink-and-retry on malformed responses."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .batching import BatchBuilder
from .errors import (
    ErrorCategory,
    FatalProviderError,
    MalformedResponseError,
    TranslationProviderError,
)
from .policy import ErrorPolicy
from .providers import TranslationProvider
from .structures import Batch, TextUnit

ResolvedCallback = Callable[[Dict[int, str]], None]


@dataclass
class DispatchStats:
    """Counters collected across one dispatch run."""

    batches: int = 0
    remote_calls: int = 0
    translated_units: int = 0
    fallback_units: int = 0
    splits: int = 0
    deepest_split: int = 0


@dataclass
class _Resolution:
    """Strings chosen for a batch, with how many of them are originals."""

    values: Dict[int, str]
    fallback: int = 0

    def merge(self, other: _Resolution) -> _Resolution:
        return _Resolution({**self.values, **other.values}, self.fallback + other.fallback)


class BatchDispatcher:
    """Sends batches to a provider and resolves every unit to a string.

    Each top-level batch is resolved independently; a malformed response
    splits the batch in half until ``max_split_depth`` is reached. Fatal
    provider errors set ``abort_event``, which stops any batch that has not
    yet issued its call.
    """

    def __init__(
        self,
        provider: TranslationProvider,
        *,
        target_language: str,
        batch_size: int = 100,
        batch_chars: int = 0,
        max_split_depth: int = 4,
        max_concurrency: int = 5,
        request_delay: float = 0.0,
        policy: ErrorPolicy | None = None,
        abort_event: asyncio.Event | None = None,
    ) -> None:
        self.provider = provider
        self.target_language = target_language
        self.builder = BatchBuilder(batch_size, batch_chars)
        self.max_split_depth = max(0, max_split_depth)
        self.max_concurrency = max(1, max_concurrency)
        self.request_delay = max(0.0, request_delay)
        self.policy = policy or ErrorPolicy()
        self.abort_event = abort_event or asyncio.Event()
        self.stats = DispatchStats()
        self.fatal_error: Optional[FatalProviderError] = None
        self._semaphore = asyncio.Semaphore(self.max_concurrency)

    def partition(self, units: Sequence[TextUnit]) -> List[Batch]:
        return self.builder.build(units)

    async def dispatch(
        self,
        units: Sequence[TextUnit],
        on_resolved: ResolvedCallback | None = None,
    ) -> Dict[int, str]:
        """Resolve every unit position to translated or original text.

        Raises the first fatal provider error once all started batches have
        settled. Positions belonging to batches skipped after the abort are
        absent from the returned mapping.
        """

        batches = self.partition(units)
        self.stats.batches += len(batches)
        results: Dict[int, str] = {}

        async def _run(batch: Batch) -> None:
            if self.abort_event.is_set():
                return
            resolution = await self._resolve(batch, depth=0)
            if resolution is None:
                return
            self.stats.translated_units += len(resolution.values) - resolution.fallback
            self.stats.fallback_units += resolution.fallback
            results.update(resolution.values)
            if on_resolved is not None:
                on_resolved(resolution.values)

        outcomes = await asyncio.gather(
            *(_run(batch) for batch in batches),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, FatalProviderError):
                continue
            if isinstance(outcome, BaseException):
                raise outcome

        if self.fatal_error is not None:
            raise self.fatal_error
        return results

    async def _resolve(self, batch: Batch, *, depth: int) -> Optional[_Resolution]:
        """Resolve one batch, or ``None`` when the run was aborted first."""

        if self.abort_event.is_set():
            return None

        payload = {str(index): unit.text for index, unit in enumerate(batch.units)}
        try:
            response = await self._call(payload)
        except MalformedResponseError as exc:
            if len(batch) > 1 and depth < self.max_split_depth:
                self.stats.splits += 1
                self.stats.deepest_split = max(self.stats.deepest_split, depth + 1)
                self.policy.info(
                    f"Batch {batch.batch_id} returned a malformed response; "
                    f"retrying as two batches of {len(batch) // 2} and "
                    f"{len(batch) - len(batch) // 2} units."
                )
                left, right = batch.split()
                resolved_left = await self._resolve(left, depth=depth + 1)
                resolved_right = await self._resolve(right, depth=depth + 1)
                if resolved_left is None or resolved_right is None:
                    return None
                return resolved_left.merge(resolved_right)
            self.policy.handle_error(
                ErrorCategory.TRANSLATION,
                f"Batch {batch.batch_id} could not be translated ({len(batch)} units); "
                "keeping the original text.",
                details=str(exc),
            )
            return self._fallback(batch)
        except FatalProviderError as exc:
            if self.fatal_error is None:
                self.fatal_error = exc
                self.policy.handle_error(ErrorCategory.FATAL, str(exc))
            self.abort_event.set()
            raise
        except TranslationProviderError as exc:
            self.policy.handle_error(
                ErrorCategory.TRANSLATION,
                f"Batch {batch.batch_id} failed ({len(batch)} units); "
                "keeping the original text.",
                details=str(exc),
            )
            return self._fallback(batch)

        if response is None:
            return None
        return self._map_translations(batch, response)

    async def _call(self, payload: Dict[str, str]) -> Optional[Mapping[str, Any]]:
        """Issue one remote call, or return ``None`` if the run aborted while queued."""

        async with self._semaphore:
            if self.request_delay:
                await asyncio.sleep(self.request_delay)
            if self.abort_event.is_set():
                return None
            self.stats.remote_calls += 1
            response = await self.provider.translate_batch(
                payload,
                target_language=self.target_language,
            )
        if not isinstance(response, Mapping):
            raise MalformedResponseError(
                "Translation provider response malformed: expected a mapping."
            )
        return response

    def _map_translations(self, batch: Batch, response: Mapping[str, Any]) -> _Resolution:
        resolved: Dict[int, str] = {}
        fallback = 0
        for index, (position, unit) in enumerate(zip(batch.positions, batch.units)):
            translated = response.get(str(index))
            if isinstance(translated, str) and translated.strip():
                resolved[position] = translated
                continue
            self.policy.handle_error(
                ErrorCategory.TRANSLATION,
                f"Translation missing for index {index} of batch {batch.batch_id}; "
                f"keeping the original text: {_shorten(unit.text)!r}",
            )
            resolved[position] = unit.text
            fallback += 1
        return _Resolution(resolved, fallback)

    def _fallback(self, batch: Batch) -> _Resolution:
        return _Resolution(
            {position: unit.text for position, unit in zip(batch.positions, batch.units)},
            fallback=len(batch),
        )


def _shorten(text: str, limit: int = 100) -> str:
    return text if len(text) <= limit else text[:limit] + "..."
