"""Command line interface for the jarlingo translator."""

from __future__ import annotations

import argparse
import os
import pathlib
import sys
from typing import Any, Iterable, Optional

from .configuration import get_settings, normalise_provider_name
from .errors import (
    JarlingoError,
    NoArchivesFoundError,
    TranslationProviderConfigurationError,
)
from .pipeline import PipelineConfig, RunSummary, TranslationPipeline
from .providers import PROMPT_VERSION, build_provider
from .scanner import DEFAULT_BOOK_ROOTS

DEFAULT_OUTPUT_DIRECTORY = "translated_rp"
DEFAULT_CACHE_DIRECTORY = ".jarlingo_cache"
DEFAULT_TARGET_LANGUAGE = "ja_jp"
DEFAULT_LANGUAGE_NAME = "Japanese"
DEFAULT_BATCH_SIZE = 100
DEFAULT_MINECRAFT_VERSION = "1.20.1"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jarlingo",
        description=(
            "Translate the language files and documentation books inside mod "
            "archives into a resource pack."
        ),
    )
    parser.add_argument(
        "mods_dir",
        nargs="?",
        help="Directory holding .jar/.zip mod archives (default: SOURCE_DIRECTORY).",
    )
    parser.add_argument(
        "-o",
        "--output",
        help=f"Resource pack output directory (default: OUTPUT_DIRECTORY or ./{DEFAULT_OUTPUT_DIRECTORY}).",
    )
    parser.add_argument(
        "-s",
        "--source-language",
        default="en_us",
        help="Language code of the files to translate (default: en_us).",
    )
    parser.add_argument(
        "-t",
        "--target-language",
        help=f"Language code written into the resource pack (default: TARGET_LANGUAGE or {DEFAULT_TARGET_LANGUAGE}).",
    )
    parser.add_argument(
        "-l",
        "--language-name",
        help=f"Target language name used in the instructions (default: LANGUAGE_NAME or {DEFAULT_LANGUAGE_NAME}).",
    )
    parser.add_argument(
        "-p",
        "--provider",
        help="Translation provider identifier: openai, azure_openai or echo.",
    )
    parser.add_argument(
        "-m",
        "--model",
        help="Provider-specific model or deployment identifier.",
    )
    parser.add_argument(
        "-b",
        "--batch-size",
        type=int,
        help=f"Maximum strings per translation request (default: BATCH_SIZE or {DEFAULT_BATCH_SIZE}).",
    )
    parser.add_argument(
        "--batch-chars",
        type=int,
        default=0,
        help="Optional character budget per request; 0 disables it.",
    )
    parser.add_argument(
        "--max-split-depth",
        type=int,
        default=4,
        help="How many times a batch may be halved after malformed responses (default: 4).",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        help="Archive scanning worker processes (default: MAX_WORKERS or CPU count).",
    )
    parser.add_argument(
        "--max-api-calls",
        type=int,
        default=5,
        help="Concurrent translation requests (default: 5).",
    )
    parser.add_argument(
        "--max-writes",
        type=int,
        default=15,
        help="Concurrent output file writes (default: 15).",
    )
    parser.add_argument(
        "--request-delay",
        type=float,
        default=0.05,
        help="Seconds to wait before each translation request (default: 0.05).",
    )
    parser.add_argument(
        "--cache-dir",
        help=f"Result cache directory (default: JARLINGO_CACHE_DIR or ./{DEFAULT_CACHE_DIRECTORY}).",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Do not read or write the result cache.",
    )
    parser.add_argument(
        "--prompt-version",
        default=PROMPT_VERSION,
        help="Cache version tag; change it to force fresh translations.",
    )
    parser.add_argument(
        "--minecraft-version",
        help=f"Game version used to pick the pack format (default: MINECRAFT_VERSION or {DEFAULT_MINECRAFT_VERSION}).",
    )
    parser.add_argument(
        "--book-root",
        action="append",
        dest="book_roots",
        help="Documentation book directory name under assets/<namespace>/ "
        "(repeatable, default: patchouli_books).",
    )
    parser.add_argument(
        "--allow-empty",
        action="store_true",
        help="Succeed even when no archives are found.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    parser.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete provider requests and responses for troubleshooting.",
    )
    return parser


def build_pipeline_config(args: argparse.Namespace, settings: Any = None) -> PipelineConfig:
    """Merge CLI arguments over configured settings."""

    mods_dir = args.mods_dir or getattr(settings, "SOURCE_DIRECTORY", None)
    if not mods_dir:
        raise JarlingoError(
            "No mods directory given. Pass it as an argument or set SOURCE_DIRECTORY."
        )
    output_dir = (
        args.output
        or getattr(settings, "OUTPUT_DIRECTORY", None)
        or DEFAULT_OUTPUT_DIRECTORY
    )

    cache_dir: Optional[pathlib.Path] = None
    if not args.no_cache:
        cache_dir = pathlib.Path(
            args.cache_dir
            or getattr(settings, "JARLINGO_CACHE_DIR", None)
            or DEFAULT_CACHE_DIRECTORY
        ).expanduser().resolve()

    max_workers = (
        args.max_workers
        or getattr(settings, "MAX_WORKERS", None)
        or os.cpu_count()
        or 1
    )

    return PipelineConfig(
        source_dir=pathlib.Path(mods_dir).expanduser().resolve(),
        output_dir=pathlib.Path(output_dir).expanduser().resolve(),
        source_language=args.source_language,
        target_language=_pick(args.target_language, settings, "TARGET_LANGUAGE", DEFAULT_TARGET_LANGUAGE),
        language_name=_pick(args.language_name, settings, "LANGUAGE_NAME", DEFAULT_LANGUAGE_NAME),
        provider_name=resolve_provider_name(args, settings),
        model=args.model,
        batch_size=_pick(args.batch_size, settings, "BATCH_SIZE", DEFAULT_BATCH_SIZE),
        batch_chars=args.batch_chars,
        max_split_depth=args.max_split_depth,
        max_workers=max_workers,
        max_api_calls=args.max_api_calls,
        max_writes=args.max_writes,
        request_delay=args.request_delay,
        cache_dir=cache_dir,
        prompt_version=args.prompt_version,
        minecraft_version=_pick(
            args.minecraft_version, settings, "MINECRAFT_VERSION", DEFAULT_MINECRAFT_VERSION
        ),
        book_roots=tuple(args.book_roots) if args.book_roots else DEFAULT_BOOK_ROOTS,
        require_archives=not args.allow_empty,
        verbose=args.verbose,
    )


def _pick(value: Any, settings: Any, name: str, default: Any) -> Any:
    """Return the CLI value, else the setting, else the built-in default."""

    if value is not None:
        return value
    configured = getattr(settings, name, None)
    return configured if configured is not None else default


def resolve_provider_name(args: argparse.Namespace, settings: Any = None) -> str:
    if args.provider:
        return normalise_provider_name(args.provider)
    return getattr(settings, "LLM_PROVIDER", None) or "openai"


def execute_translation(
    config: PipelineConfig,
    *,
    settings: Any = None,
    provider_debug: bool = False,
) -> tuple[int, RunSummary | None, str | None]:
    """Execute a pipeline run and return the exit code, summary, and message."""

    if not config.source_dir.is_dir():
        return 1, None, f"Mods directory not found: {config.source_dir}"

    try:
        provider = build_provider(
            config.provider_name,
            settings=settings,
            language_name=config.language_name,
            model=config.model,
            debug=provider_debug,
        )
        summary = TranslationPipeline(config, provider).run()
    except TranslationProviderConfigurationError as exc:
        return 1, None, str(exc)
    except NoArchivesFoundError as exc:
        return 1, None, str(exc)
    except JarlingoError as exc:
        return 1, None, str(exc)
    except OSError as exc:
        return 1, None, f"File system error: {exc}"
    except KeyboardInterrupt:
        return 2, None, "Translation interrupted by user."

    if summary.aborted:
        return 2, summary, f"Translation aborted: {summary.abort_reason}"
    return 0, summary, None


def print_summary(summary: RunSummary) -> None:
    """Output a friendly report once processing completes."""

    print("\nTranslation aborted." if summary.aborted else "\nTranslation complete.")
    print(f"  Mods directory:  {summary.source_dir}")
    print(f"  Resource pack:   {summary.output_dir}")
    print(
        f"  Archives:        {summary.archives_found} "
        f"({summary.records_found} language files found)"
    )
    print(
        "  Files:           "
        f"{summary.records_processed} processed, {summary.cache_hits} from cache, "
        f"{summary.skipped_records} skipped, {summary.files_written} written"
    )
    print(
        "  Strings:         "
        f"{summary.translated_units} translated / {summary.total_units} total "
        f"({summary.fallback_units} kept original)"
    )
    print(
        f"  Requests:        {summary.remote_calls} "
        f"for {summary.total_batches} batches"
    )
    print(
        f"  Provider:        {summary.provider_name}"
        + (f" ({summary.model})" if summary.model else "")
    )
    print(f"  Languages:       {summary.source_language} -> {summary.target_language}")
    print(f"  Elapsed time:    {summary.elapsed_seconds:.2f} seconds")
    if summary.error_messages:
        print(f"  Notes:           {len(summary.error_messages)} warnings")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    settings = None
    try:
        settings = get_settings()
    except TranslationProviderConfigurationError as exc:
        if not args.provider or normalise_provider_name(args.provider) != "echo":
            print(exc)
            return 1

    provider_debug = bool(
        args.debug_provider
        or getattr(settings, "JARLINGO_PROVIDER_DEBUG", False)
    )

    try:
        config = build_pipeline_config(args, settings)
    except JarlingoError as exc:
        print(exc)
        return 1

    exit_code, summary, message = execute_translation(
        config,
        settings=settings,
        provider_debug=provider_debug,
    )

    if message:
        print(message)
    if summary:
        print_summary(summary)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
