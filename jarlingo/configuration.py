"""Prepper-backed settings for jarlingo.

Settings are layered in this order, later layers winning:
discovered ``jarlingo`` YAML files, a ``.env`` file in the working
directory, then the process environment. Command line arguments are applied
on top by :mod:`jarlingo.cli` when it builds the pipeline configuration.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterator, List, Literal, Mapping, Sequence, Tuple

from dotenv import dotenv_values
from prepper import (
    ConfigNotFound,
    Field,
    IoError,
    SchemaError,
    SchemaModel,
    ValidationError,
    model_validator,
)
from prepper.config import ConfigInstance
from prepper.loaders import _parse_file, _path_to_source, discover_file_paths
from prepper.merge import merge_layer
from prepper.provenance import ProvenanceRecorder

from .errors import TranslationProviderConfigurationError

APP_NAME = "Jarlingo"
PROVIDER_CHOICES = {"openai", "azure_openai", "echo"}
PROVIDER_SYNONYMS = {
    "azure_open_ai": "azure_openai",
    "azureopenai": "azure_openai",
    "azure": "azure_openai",
    "noop": "echo",
    "mock": "echo",
}

AZURE_REQUIRED = (
    "AZURE_OPENAI_API_KEY",
    "AZURE_OPENAI_ENDPOINT",
    "AZURE_OPENAI_API_VERSION",
    "AZURE_OPENAI_DEPLOYMENT_NAME",
)
POSITIVE_INTEGERS = ("MAX_WORKERS", "BATCH_SIZE")


class JarlingoConfig(SchemaModel):
    """Every setting that may come from files or the environment."""

    LLM_PROVIDER: Literal["azure_openai", "openai", "echo"] = Field(
        default="openai",
        description="Translation service: openai, azure_openai or echo.",
    )
    AZURE_OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    AZURE_OPENAI_ENDPOINT: str | None = Field(default=None)
    AZURE_OPENAI_API_VERSION: str | None = Field(default=None)
    AZURE_OPENAI_DEPLOYMENT_NAME: str | None = Field(default=None)
    OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    OPENAI_MODEL: str | None = Field(
        default=None,
        description="Chat model used when LLM_PROVIDER is openai.",
    )
    SOURCE_DIRECTORY: str | None = Field(
        default=None,
        description="Directory holding the mod archives to translate.",
    )
    OUTPUT_DIRECTORY: str | None = Field(
        default=None,
        description="Resource pack output directory.",
    )
    TARGET_LANGUAGE: str | None = Field(
        default=None,
        description="Language code written into the resource pack, e.g. ja_jp.",
    )
    LANGUAGE_NAME: str | None = Field(
        default=None,
        description="Human readable target language used in the instructions.",
    )
    BATCH_SIZE: int | None = Field(
        default=None,
        description="Maximum strings per translation request.",
    )
    MINECRAFT_VERSION: str | None = Field(
        default=None,
        description="Game version used to pick the pack format.",
    )
    MAX_WORKERS: int | None = Field(
        default=None,
        description="Number of archive scanning worker processes.",
    )
    JARLINGO_CACHE_DIR: str | None = Field(default=None)
    JARLINGO_PROVIDER_DEBUG: bool = Field(default=False)

    @model_validator(mode="before")
    def _normalise_provider(data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("LLM_PROVIDER"), str):
            data["LLM_PROVIDER"] = normalise_provider_name(data["LLM_PROVIDER"])
        return data


def normalise_provider_name(raw_value: str) -> str:
    """Map provider spellings onto the supported provider names.

    Unknown names fall back to ``openai``.
    """

    normalized = raw_value.strip().lower().replace("-", "_")
    normalized = PROVIDER_SYNONYMS.get(normalized, normalized)
    return normalized if normalized in PROVIDER_CHOICES else "openai"


@lru_cache(maxsize=1)
def _load_config_instance(app_dir: Path | None = None) -> ConfigInstance:
    """Load every layer once and cache the immutable instance."""

    base_dir = app_dir or Path.cwd()
    provenance = ProvenanceRecorder()
    try:
        combined: Dict[str, Any] = {}
        for source, layer, values in _iter_layers(base_dir):
            merge_layer(combined, values, provenance=provenance, source=source, layer=layer)
        if not combined:
            raise ConfigNotFound("No configuration sources were found.")

        model = JarlingoConfig.validate(combined, provenance=provenance)
    except ConfigNotFound as exc:
        raise TranslationProviderConfigurationError(
            "No configuration sources were found. Provide settings via a "
            "jarlingo YAML file, a .env file, or environment variables."
        ) from exc
    except IoError as exc:
        raise TranslationProviderConfigurationError(
            f"Configuration files could not be read: {exc}"
        ) from exc
    except SchemaError as exc:
        raise TranslationProviderConfigurationError(
            f"Configuration schema error: {exc}"
        ) from exc
    except ValidationError as exc:
        raise TranslationProviderConfigurationError(
            _format_validation_errors(exc.to_dict())
        ) from exc

    _validate_provider_settings(model)
    return ConfigInstance(
        model=model,
        provenance=provenance,
        env_prefix=None,
        schema_cls=JarlingoConfig,
    )


def _iter_layers(app_dir: Path) -> Iterator[Tuple[str, str, Mapping[str, Any]]]:
    """Yield ``(source, layer, values)`` from lowest to highest precedence."""

    for path, label in discover_file_paths(APP_NAME, "yaml", app_dir=app_dir, extra_paths=None):
        parsed = _parse_file(path, "yaml")
        if not isinstance(parsed, Mapping):
            raise IoError(
                f"Invalid configuration file {path}: expected a mapping at the root."
            )
        yield _path_to_source(label, "yaml", path), "file", parsed

    known = set(JarlingoConfig.__field_infos__)
    dotenv_path = app_dir / ".env"
    env_sources: List[Tuple[str, Mapping[str, Any]]] = []
    if dotenv_path.exists():
        env_sources.append((".env", dotenv_values(dotenv_path)))
    env_sources.append(("process", os.environ))

    for prefix, values in env_sources:
        for key in sorted(known.intersection(values)):
            value = values[key]
            if isinstance(value, str):
                yield f"env:{prefix}:{key}", "env", {key: value}


def _validate_provider_settings(settings: Any) -> None:
    """Raise when the chosen provider lacks settings or limits are invalid."""

    errors: List[str] = []
    provider = settings.LLM_PROVIDER

    if provider == "openai" and not settings.OPENAI_API_KEY:
        errors.append("OPENAI_API_KEY is required when LLM_PROVIDER is 'openai'.")
    elif provider == "azure_openai":
        missing = [name for name in AZURE_REQUIRED if not getattr(settings, name, None)]
        if missing:
            errors.append(
                "The following Azure OpenAI settings must be provided when "
                f"LLM_PROVIDER is 'azure_openai': {', '.join(missing)}."
            )

    for name in POSITIVE_INTEGERS:
        value = getattr(settings, name, None)
        if value is not None and value < 1:
            errors.append(f"{name} must be at least 1.")

    if errors:
        raise TranslationProviderConfigurationError(
            "Configuration validation errors detected:\n"
            + "\n".join(f"- {message}" for message in errors)
        )


def _format_validation_errors(entries: Sequence[Mapping[str, Any]]) -> str:
    lines = ["Configuration validation errors detected:"]
    for entry in entries:
        path = entry.get("path") or []
        if isinstance(path, (list, tuple)):
            location = ".".join(str(part) for part in path if part not in {None, ""})
        else:
            location = str(path)
        message = str(entry.get("message") or entry.get("msg") or "Invalid value")
        source = entry.get("source")
        line = f"- {location}: {message}" if location else f"- {message}"
        lines.append(f"{line} (source: {source})" if source else line)
    return "\n".join(lines)


def get_config(app_dir: Path | None = None) -> ConfigInstance:
    """Return the immutable configuration instance."""

    return _load_config_instance(app_dir=app_dir)


def get_settings(app_dir: Path | None = None) -> JarlingoConfig:
    """Return the validated schema model for typed access."""

    return get_config(app_dir=app_dir).model()
