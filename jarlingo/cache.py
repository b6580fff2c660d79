"""Content-addressed cache of reconstructed output files.

Entries are keyed by a digest of the record identity and hold the final
output text. Changing the prompt version changes every digest, which is the
only way entries expire.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import os
import pathlib
import tempfile
from dataclasses import asdict, dataclass
from typing import Optional

from .errors import ErrorCategory
from .policy import ErrorPolicy


@dataclass(frozen=True)
class CacheIdentity:
    """Everything that decides whether a cached output can be reused."""

    source_archive: str
    entry_path: str
    target_language: str
    prompt_version: str

    def digest(self) -> str:
        canonical = json.dumps(
            [self.source_archive, self.entry_path, self.target_language, self.prompt_version],
            ensure_ascii=False,
            separators=(",", ":"),
        )
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ContentCache:
    """One JSON file per identity digest inside ``directory``."""

    def __init__(self, directory: pathlib.Path, *, policy: ErrorPolicy | None = None) -> None:
        self.directory = directory
        self.policy = policy

    def path_for(self, identity: CacheIdentity) -> pathlib.Path:
        return self.directory / f"{identity.digest()}.json"

    async def lookup(self, identity: CacheIdentity) -> Optional[str]:
        """Return cached content, or ``None`` on a miss or any read failure."""

        return await asyncio.to_thread(self._read, identity)

    async def store(self, identity: CacheIdentity, content: str) -> bool:
        """Persist content; failures are reported and swallowed."""

        try:
            await asyncio.to_thread(self._write, identity, content)
        except OSError as exc:
            if self.policy is not None:
                self.policy.handle_error(
                    ErrorCategory.CACHE,
                    f"Could not store cache entry for {identity.entry_path} "
                    f"({identity.source_archive}).",
                    details=str(exc),
                )
            return False
        return True

    def _read(self, identity: CacheIdentity) -> Optional[str]:
        path = self.path_for(identity)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            if self.policy is not None:
                self.policy.handle_error(
                    ErrorCategory.CACHE,
                    f"Ignoring unreadable cache entry {path.name}.",
                    details=str(exc),
                )
            return None

        if not isinstance(payload, dict) or payload.get("identity") != asdict(identity):
            return None
        content = payload.get("content")
        return content if isinstance(content, str) else None

    def _write(self, identity: CacheIdentity, content: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(identity)
        payload = json.dumps(
            {"identity": asdict(identity), "content": content},
            ensure_ascii=False,
        )
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.directory), prefix=f".{path.stem}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except OSError:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise


class NullCache:
    """Cache stand-in used when caching is disabled."""

    async def lookup(self, identity: CacheIdentity) -> Optional[str]:
        return None

    async def store(self, identity: CacheIdentity, content: str) -> bool:
        return False
