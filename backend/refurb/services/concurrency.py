# Overview: Service-layer helpers for concurrency; row locks and per-key in-flight guards.

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator

from .errors import ConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


class InFlightGuard:
    """
    Rejects a second operation on a key while the first is still running.

    Not a queue: the second caller gets ConflictError immediately.
    """

    def __init__(self, label: str):
        self._label = label
        self._lock = threading.Lock()
        self._active: set[Hashable] = set()

    def is_active(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._active

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._lock:
            if key in self._active:
                raise ConflictError(f"An operation on this {self._label} is already in progress")
            self._active.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(key)
