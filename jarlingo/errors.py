"""Error definitions for the jarlingo resource pack translator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class ErrorCategory(Enum):
    """Categorises handled errors for reporting."""

    ARCHIVE = auto()
    PARSE = auto()
    TRANSLATION = auto()
    CACHE = auto()
    FILE_IO = auto()
    FATAL = auto()


class JarlingoError(Exception):
    """Base exception for all custom errors."""


class NoArchivesFoundError(JarlingoError):
    """Raised when the source directory holds no mod archives."""


class RecordParseError(JarlingoError):
    """Raised when a record's content cannot be parsed into its structure."""


class TranslationProviderConfigurationError(JarlingoError):
    """Raised when the translation provider is misconfigured."""


class TranslationProviderError(JarlingoError):
    """Raised when a translation call fails in a recoverable way."""


class RateLimitedError(TranslationProviderError):
    """Raised when the service asks the caller to slow down."""


class MalformedResponseError(TranslationProviderError):
    """Raised when a response body cannot be read as a correlation mapping."""


class FatalProviderError(TranslationProviderError):
    """Raised when the service refuses further work for the whole run."""


class AuthorizationError(FatalProviderError):
    """Raised when the service rejects the configured credentials."""


class QuotaExceededError(FatalProviderError):
    """Raised when the account quota is exhausted."""


@dataclass
class ErrorRecord:
    """Stores context for a handled error."""

    category: ErrorCategory
    message: str
    details: Optional[str] = None
