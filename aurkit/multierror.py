"""Accumulation of errors raised by concurrent workers."""

from __future__ import annotations

import threading
from typing import List, Optional

__all__ = ["MultiError"]


class MultiError(Exception):
    """An error that collects several errors, safe to fill from many threads."""

    def __init__(self, errors: Optional[List[BaseException]] = None) -> None:
        super().__init__()
        self.errors: List[BaseException] = list(errors or [])
        self._lock = threading.Lock()

    def __str__(self) -> str:
        return "\n".join(str(e) for e in self.errors)

    def add(self, error: Optional[BaseException]) -> None:
        """Record an error; ``None`` is ignored."""
        if error is None:
            return
        with self._lock:
            self.errors.append(error)

    def raise_for_errors(self) -> None:
        """Raise this error if any errors were recorded."""
        if self.errors:
            raise self