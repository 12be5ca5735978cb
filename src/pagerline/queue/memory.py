from __future__ import annotations

import heapq
import itertools
import time
from typing import Callable

from pagerline.queue.models import JobMessage


class InMemoryJobEnqueuer:
    """Delayed job queue kept in process memory for local development and tests.

    Messages sit in a heap keyed by the epoch second they become due.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._heap: list[tuple[float, int, JobMessage]] = []
        self._sequence = itertools.count()

    async def enqueue(self, message: JobMessage) -> str:
        ready_at = self._clock() + max(message.delay_seconds, 0)
        heapq.heappush(self._heap, (ready_at, next(self._sequence), message))
        return message.job_id

    async def dequeue_due(self, limit: int = 10) -> list[JobMessage]:
        now = self._clock()
        due: list[JobMessage] = []
        while self._heap and self._heap[0][0] <= now and len(due) < limit:
            due.append(heapq.heappop(self._heap)[2])
        return due

    async def ack(self, message: JobMessage) -> None:
        """Jobs leave the heap when dequeued, so there is no lease to drop."""

    async def ping(self) -> bool:
        return True

    def size(self) -> int:
        return len(self._heap)
