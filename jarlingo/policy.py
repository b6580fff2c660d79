"""Error handling policy implementation."""

from __future__ import annotations

import sys
from collections import Counter
from typing import List, Optional, TextIO

from .errors import ErrorCategory, ErrorRecord


class ErrorPolicy:
    """Records handled errors and reports them without stopping the run.

    Every category except ``FATAL`` is recoverable: the caller falls back or
    skips the affected record and carries on. Fatal errors are recorded here
    too, but stopping the run is left to the caller.
    """

    def __init__(self, *, verbose: bool = False, stream: TextIO | None = None) -> None:
        self.verbose = verbose
        self.stream = stream
        self.records: List[ErrorRecord] = []
        self._counts: Counter[ErrorCategory] = Counter()

    def handle_error(
        self,
        category: ErrorCategory,
        message: str,
        details: Optional[str] = None,
    ) -> None:
        """Record an error and print a one-line notice."""

        self.records.append(ErrorRecord(category=category, message=message, details=details))
        self._counts[category] += 1

        prefix = "[error]" if category is ErrorCategory.FATAL else "[warning]"
        line = f"{prefix} {message}"
        if details and self.verbose:
            line = f"{line} ({details})"
        print(line, file=self.stream or sys.stdout)

    def info(self, message: str) -> None:
        """Print progress information when verbose output is enabled."""

        if self.verbose:
            print(message, file=self.stream or sys.stdout)

    def count(self, category: ErrorCategory) -> int:
        return self._counts[category]

    @property
    def messages(self) -> List[str]:
        return [record.message for record in self.records]
