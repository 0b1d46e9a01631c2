"""Per-conversation serialization of orchestration cycles."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class ConversationLocks:
    """Hand out one lock per conversation key so cycles on the same task never interleave."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, conversation_key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(conversation_key)
            if lock is None:
                lock = threading.Lock()
                self._locks[conversation_key] = lock
            return lock

    @contextmanager
    def hold(self, conversation_key: str) -> Iterator[None]:
        lock = self.lock_for(conversation_key)
        with lock:
            yield
