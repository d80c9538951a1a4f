"""
Concurrency governor: bounded admission with FIFO waiting.

All methods are synchronous. Callers on the event loop can therefore
check and mutate slot state without a suspension point in between.
"""

from collections import OrderedDict
from typing import Dict, Generic, Hashable, List, TypeVar

T = TypeVar("T")


class ConcurrencyGovernor(Generic[T]):
    """Admits at most ``max_concurrency`` items at once, in arrival order."""

    def __init__(self, max_concurrency: int):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.max_concurrency = max_concurrency
        self._waiting: "OrderedDict[Hashable, T]" = OrderedDict()
        self._active: Dict[Hashable, T] = {}
        self._seen: set = set()

    @property
    def active(self) -> int:
        return len(self._active)

    @property
    def waiting(self) -> int:
        return len(self._waiting)

    @property
    def free_slots(self) -> int:
        return self.max_concurrency - len(self._active)

    def is_active(self, ident: Hashable) -> bool:
        return ident in self._active

    def is_waiting(self, ident: Hashable) -> bool:
        return ident in self._waiting

    def enqueue(self, ident: Hashable, item: T) -> None:
        """Place an item at the back of the waiting line."""
        if ident in self._seen:
            raise ValueError(f"{ident!r} was already enqueued")
        self._seen.add(ident)
        self._waiting[ident] = item

    def withdraw(self, ident: Hashable) -> bool:
        """Remove a waiting item that will never run. Returns False if it is not waiting."""
        return self._waiting.pop(ident, None) is not None

    def admit_ready(self) -> List[T]:
        """Pop waiting items into free slots, oldest first."""
        admitted = []
        while self._waiting and len(self._active) < self.max_concurrency:
            ident, item = self._waiting.popitem(last=False)
            self._active[ident] = item
            admitted.append(item)
        return admitted

    def release(self, ident: Hashable) -> None:
        """Free the slot held by an admitted item. Exactly once per admission."""
        if ident not in self._active:
            raise ValueError(f"{ident!r} does not hold a slot")
        del self._active[ident]

    def drain_waiting(self) -> List[T]:
        """Remove and return every waiting item (used when the queue stops)."""
        items = list(self._waiting.values())
        self._waiting.clear()
        return items
