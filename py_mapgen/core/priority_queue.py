"""Priority queue used by the territory expansion."""

import heapq
import itertools
from typing import Any, List, Protocol, Tuple


class PriorityQueue(Protocol):
    """Min-priority queue that tolerates several entries for the same item."""

    def push(self, score: float, item: Any) -> None:
        ...

    def pop(self) -> Tuple[float, Any]:
        ...

    def __len__(self) -> int:
        ...


class HeapPriorityQueue:
    """Binary heap; entries with equal scores come out in insertion order."""

    def __init__(self):
        self._heap: List[Tuple[float, int, Any]] = []
        self._counter = itertools.count()

    def push(self, score: float, item: Any) -> None:
        heapq.heappush(self._heap, (score, next(self._counter), item))

    def pop(self) -> Tuple[float, Any]:
        if not self._heap:
            raise IndexError("pop from an empty priority queue")
        score, _, item = heapq.heappop(self._heap)
        return score, item

    def __len__(self) -> int:
        return len(self._heap)
