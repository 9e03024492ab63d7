"""
Keyed locks -- one re-entrant lock per order or per member.

The order lock is the single-writer critical section for grading and
allocation of one order; the member lock serializes savings postings of
one member.  Locks are re-entrant so a ledger listener may recompute an
allocation while the grading thread still holds the order lock.

Locks are weakly held: a key's lock lives while some caller holds a
reference to it and is recreated on next use, so the table does not grow
with every order ever seen.
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import Iterator
from contextlib import contextmanager


class KeyedLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, threading.RLock] = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self.lock_for(key):
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
