from __future__ import annotations

import heapq
from typing import List, Tuple

from ..models import Event


class EventScheduler:
    """Heap mínimo de eventos ordenado por (tempo, ordem de inserção)."""

    def __init__(self) -> None:
        self._heap: List[Tuple[float, int, Event]] = []
        self._counter = 0

    def schedule(self, event: Event) -> None:
        heapq.heappush(self._heap, (event.time, self._counter, event))
        self._counter += 1

    def pop_next(self) -> Event:
        if not self._heap:
            raise IndexError("pop_next em escalonador vazio")
        _, _, event = heapq.heappop(self._heap)
        return event

    def is_empty(self) -> bool:
        return not self._heap

    def __len__(self) -> int:
        return len(self._heap)
