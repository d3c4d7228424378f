"""Test-scoped unique names for fixture services."""

from __future__ import annotations

import itertools
import threading


class HostnameSequence:
    """Hands out ``<prefix>-<n>.<domain>`` hostnames, unique within one sequence.

    Create one per test (or per suite) and pass it to fixtures that need a
    fresh external hostname, e.g. for a ServiceEntry.
    """

    def __init__(self, prefix: str, *, domain: str = "com", start: int = 1) -> None:
        prefix = prefix.strip().strip("-.")
        if not prefix:
            raise ValueError("prefix must not be empty")
        self.prefix = prefix
        self.domain = domain.strip(".")
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next(self) -> str:
        with self._lock:
            n = next(self._counter)
        if self.domain:
            return f"{self.prefix}-{n}.{self.domain}"
        return f"{self.prefix}-{n}"

    def __iter__(self):
        while True:
            yield self.next()
