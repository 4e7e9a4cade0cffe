"""Per-file exclusivity scopes."""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterable, Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field

from dossier.errors import OperationTimeout


@dataclass
class _Entry:
    lock: threading.RLock = field(default_factory=threading.RLock)
    holders: int = 0


class FileLocks:
    """Registry of re-entrant locks, one per key.

    Keys are file ids, or tuples for scopes that exist before a file does
    (see ``DocumentStore.name_lock``).

    Entries exist only while someone holds or waits for them. There is no
    global lock: operations on different files never contend.
    """

    def __init__(self, timeout: float = 5.0) -> None:
        self.timeout = timeout
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}

    @contextmanager
    def hold(self, key: Hashable, timeout: float | None = None) -> Iterator[None]:
        """Hold the lock of *key* for the duration of the block.

        Raises:
            OperationTimeout: The lock was not acquired within *timeout*.
        """
        wait = self.timeout if timeout is None else timeout
        with self._guard:
            entry = self._entries.setdefault(key, _Entry())
            entry.holders += 1
        try:
            if not entry.lock.acquire(timeout=wait):
                raise OperationTimeout(f"{_describe(key)} is busy (waited {wait:.1f}s)")
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[key]

    @contextmanager
    def hold_many(self, file_ids: Iterable[int], timeout: float | None = None) -> Iterator[None]:
        """Hold several file locks, acquired in ascending id order."""
        with ExitStack() as stack:
            for file_id in sorted(set(file_ids)):
                stack.enter_context(self.hold(file_id, timeout))
            yield

    def held(self) -> int:
        """Number of keys currently locked or waited on."""
        with self._guard:
            return len(self._entries)


def _describe(key: Hashable) -> str:
    if isinstance(key, int):
        return f"file {key}"
    return " ".join(str(part) for part in key) if isinstance(key, tuple) else str(key)
