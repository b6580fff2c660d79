"""Remote translation services for correlation-indexed string batches."""

from __future__ import annotations

import json
import sys
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping

from .errors import (
    AuthorizationError,
    MalformedResponseError,
    QuotaExceededError,
    RateLimitedError,
    TranslationProviderConfigurationError,
    TranslationProviderError,
)

# Part of every cache identity; bump it whenever the instructions change.
PROMPT_VERSION = "mod-lang-v4"


def build_system_prompt(language_name: str) -> str:
    """Instructions sent with every batch for the given target language."""

    target = language_name.upper()
    return (
        "You are an expert translation assistant for Minecraft mods. Your SOLE task "
        f"is to translate text accurately into {target}. You MUST translate into "
        f"{target} ONLY.\n\n"
        "Translate the text values in the provided JSON object according to these rules:\n"
        f"1. Keep the original meaning, style, and tone in the {target} translation. "
        "Do not add commentary or explanations.\n"
        "2. Preserve formatting codes such as %s, %d, %1$s, §0-9, §a-f, §k-o, §r exactly "
        "as they appear. Do not translate them or add/remove spaces around them.\n"
        "3. If a value looks like a technical identifier, key, placeholder, number, or "
        'boolean (e.g. "item.minecraft.diamond", "true", "1.5"), return it unchanged.\n'
        "4. Return ONLY a single valid JSON object mapping every original index key "
        f"(as a string) to its translated string in {target}. Do not wrap the JSON in "
        "markdown code fences or add text outside the JSON object."
    )


class TranslationProvider(ABC):
    """Translates one batch of index to text pairs per call."""

    name = "provider"
    model: str | None = None

    @abstractmethod
    async def translate_batch(
        self,
        payload: Mapping[str, str],
        *,
        target_language: str,
    ) -> Dict[str, Any]:
        """Translate a correlation-index to text mapping.

        ``target_language`` is the game language code the strings are
        written for (e.g. ``ja_jp``). Providers may pass it to the model or
        ignore it.

        Returns the parsed response object; values are not validated here.
        Raises :class:`MalformedResponseError` when the response is not a JSON
        object, and a :class:`FatalProviderError` subclass when the run
        cannot continue.
        """


class EchoTranslationProvider(TranslationProvider):
    """Returns every string unchanged; used for offline runs and tests."""

    name = "echo"

    async def translate_batch(
        self,
        payload: Mapping[str, str],
        *,
        target_language: str,
    ) -> Dict[str, Any]:
        return dict(payload)


class OpenAITranslationProvider(TranslationProvider):
    """Chat Completions in JSON object mode, on OpenAI or Azure OpenAI."""

    name = "openai"
    DEFAULT_MODEL = "gpt-4o-mini"
    TEMPERATURE = 0.1

    def __init__(
        self,
        *,
        settings: Any = None,
        language_name: str = "Japanese",
        model: str | None = None,
        client: Any = None,
        debug: bool = False,
    ) -> None:
        self.debug = debug
        self.language_name = language_name
        self.provider_kind = getattr(settings, "LLM_PROVIDER", "openai") or "openai"
        if client is not None:
            self._client = client
            self._default_model = self.DEFAULT_MODEL
        else:
            self._client, self._default_model = self._build_client(settings)
        self.model = model or self._default_model
        self.system_prompt = build_system_prompt(language_name)

    def _build_client(self, settings: Any) -> tuple[Any, str]:
        if settings is None:
            raise TranslationProviderConfigurationError(
                "OpenAI configuration missing. Set OPENAI_API_KEY or choose a "
                "different provider."
            )
        if self.provider_kind == "azure_openai":
            return self._build_azure_client(settings)

        return self._build_openai_client(settings)

    def _build_openai_client(self, settings: Any) -> tuple[Any, str]:
        api_key = getattr(settings, "OPENAI_API_KEY", None)
        if not api_key:
            raise TranslationProviderConfigurationError(
                "OpenAI configuration missing. Set OPENAI_API_KEY or choose a "
                "different provider."
            )
        from openai import AsyncOpenAI

        default_model = getattr(settings, "OPENAI_MODEL", None) or self.DEFAULT_MODEL
        return AsyncOpenAI(api_key=api_key), default_model

    def _build_azure_client(self, settings: Any) -> tuple[Any, str]:
        api_key = getattr(settings, "AZURE_OPENAI_API_KEY", None)
        endpoint = getattr(settings, "AZURE_OPENAI_ENDPOINT", None)
        api_version = getattr(settings, "AZURE_OPENAI_API_VERSION", None)
        deployment_name = getattr(settings, "AZURE_OPENAI_DEPLOYMENT_NAME", None)

        missing = [
            name
            for name, value in {
                "AZURE_OPENAI_API_KEY": api_key,
                "AZURE_OPENAI_ENDPOINT": endpoint,
                "AZURE_OPENAI_API_VERSION": api_version,
                "AZURE_OPENAI_DEPLOYMENT_NAME": deployment_name,
            }.items()
            if not value
        ]
        if missing:
            raise TranslationProviderConfigurationError(
                "Azure OpenAI configuration incomplete. Please set: "
                + ", ".join(missing)
                + "."
            )

        from openai import AsyncAzureOpenAI

        client = AsyncAzureOpenAI(
            api_key=api_key,
            api_version=api_version,
            azure_endpoint=endpoint,
        )
        return client, deployment_name  # type: ignore[return-value]

    async def translate_batch(
        self,
        payload: Mapping[str, str],
        *,
        target_language: str,
    ) -> Dict[str, Any]:
        if not payload:
            return {}

        user_prompt = (
            f"Target language code: {target_language}\n"
            "Translate the values in this JSON object according to the rules:\n"
            + json.dumps(dict(payload), ensure_ascii=False)
        )
        self._log_debug("provider.request.system_prompt", self.system_prompt)
        self._log_debug("provider.request.payload", dict(payload))

        content = await self._invoke_model(user_prompt=user_prompt)
        self._log_debug("provider.response.content", content)
        return self._parse_mapping(content)

    async def _invoke_model(self, *, user_prompt: str) -> str:
        """Call the Chat Completions API and return the message text."""

        import openai

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                temperature=self.TEMPERATURE,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": self.system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            raise AuthorizationError(
                f"Translation service rejected the credentials — {exc}"
            ) from exc
        except openai.RateLimitError as exc:
            if _is_quota_error(exc):
                raise QuotaExceededError(
                    f"Translation service quota exhausted — {exc}"
                ) from exc
            raise RateLimitedError(
                f"Translation service rate limit reached — {exc}"
            ) from exc
        except openai.APIError as exc:
            raise TranslationProviderError(
                f"Translation service temporarily unavailable — {exc}"
            ) from exc

        content: str | None = None
        choices = getattr(response, "choices", None) or []
        for choice in choices:
            message = getattr(choice, "message", None)
            message_content = getattr(message, "content", None)
            if message_content:
                content = str(message_content)
                break

        if content is None:
            raise MalformedResponseError(
                "Translation provider response empty or unrecognised."
            )
        return content

    def _parse_mapping(self, content: str) -> Dict[str, Any]:
        text = self._strip_code_fence(content)
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedResponseError(
                f"Translation provider returned invalid JSON: {exc}"
            ) from exc
        if not isinstance(parsed, dict):
            raise MalformedResponseError(
                "Translation provider response malformed: expected a JSON object."
            )
        return parsed

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit structured debug information when enabled."""

        if not self.debug:
            return
        try:
            if isinstance(payload, (dict, list)):
                message = json.dumps(payload, ensure_ascii=False, indent=2)
            else:
                message = str(payload)
        except (TypeError, ValueError):
            message = repr(payload)
        print(f"[jarlingo][provider-debug] {label}:\n{message}", file=sys.stderr)

    def _strip_code_fence(self, text: str) -> str:
        """Remove leading/trailing markdown code fences if present."""

        stripped = text.strip()
        if not stripped.startswith("```"):
            return stripped

        # Drop opening fence and optional language hint.
        first_newline = stripped.find("\n")
        if first_newline == -1:
            return stripped
        body = stripped[first_newline + 1 :]
        closing_index = body.rfind("```")
        if closing_index != -1:
            body = body[:closing_index]
        return body.strip()


def _is_quota_error(exc: Any) -> bool:
    code = getattr(exc, "code", None)
    if code == "insufficient_quota":
        return True
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict) and error.get("code") == "insufficient_quota":
            return True
    return "insufficient_quota" in str(exc)


def build_provider(
    name: str | None,
    *,
    settings: Any = None,
    language_name: str = "Japanese",
    model: str | None = None,
    debug: bool = False,
) -> TranslationProvider:
    """Build the provider for a CLI or settings name."""

    normalized = (name or "openai").strip().lower().replace("-", "_")
    if normalized in {"openai", "gpt", "default", "azure_openai", "azure"}:
        if settings is not None:
            kind = "azure_openai" if normalized in {"azure_openai", "azure"} else "openai"
            settings = _with_provider(settings, kind)
        return OpenAITranslationProvider(
            settings=settings,
            language_name=language_name,
            model=model,
            debug=debug,
        )
    if normalized in {"echo", "noop", "mock"}:
        return EchoTranslationProvider()
    raise TranslationProviderConfigurationError(
        f"Unknown translation provider '{name}'."
    )


class _ProviderOverride:
    """Read-through view of settings with a different provider kind."""

    def __init__(self, settings: Any, provider: str) -> None:
        self._settings = settings
        self.LLM_PROVIDER = provider

    def __getattr__(self, item: str) -> Any:
        return getattr(self._settings, item)


def _with_provider(settings: Any, provider: str) -> Any:
    if getattr(settings, "LLM_PROVIDER", None) == provider:
        return settings
    return _ProviderOverride(settings, provider)
