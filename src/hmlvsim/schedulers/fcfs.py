from __future__ import annotations

from collections import deque
from typing import Deque, Optional


class FCFSQueue:
    """Fila FIFO de ids de job aguardando um estágio (ordem de chegada ao estágio)."""

    def __init__(self) -> None:
        self._queue: Deque[int] = deque()

    def push(self, job_id: int) -> None:
        self._queue.append(job_id)

    def pop(self) -> Optional[int]:
        if not self._queue:
            return None
        return self._queue.popleft()

    def __len__(self) -> int:
        return len(self._queue)
