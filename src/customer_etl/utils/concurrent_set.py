"""
Thread-safe set used for duplicate detection across transform workers.
"""

import threading
from typing import Generic, Hashable, Iterator, TypeVar

K = TypeVar("K", bound=Hashable)


class ConcurrentSet(Generic[K]):
    """
    A set whose check-and-add is atomic.

    Shared by every transform worker of a run; one instance per run.
    """

    def __init__(self) -> None:
        self._items: set[K] = set()
        self._lock = threading.Lock()

    def add_if_absent(self, item: K) -> bool:
        """
        Add item unless already present.

        Returns:
            True if the item was added, False if it was already in the set
        """
        with self._lock:
            if item in self._items:
                return False
            self._items.add(item)
            return True

    def __contains__(self, item: object) -> bool:
        with self._lock:
            return item in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __iter__(self) -> Iterator[K]:
        with self._lock:
            return iter(list(self._items))
