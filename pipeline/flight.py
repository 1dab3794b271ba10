from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class SingleFlight:
    """
    Per-key mutual exclusion within one process.

    Locks are reference counted and dropped once no caller holds or waits
    on them, so the table only grows with the number of in-flight keys.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, List] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            slot = self._locks.setdefault(key, [threading.Lock(), 0])
            slot[1] += 1
        try:
            with slot[0]:
                yield
        finally:
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
