from __future__ import annotations

from typing import Protocol

from pagerline.config import Settings
from pagerline.core.errors import ConfigurationError
from pagerline.queue.memory import InMemoryJobEnqueuer
from pagerline.queue.models import PAGING_STEP_JOB, JobMessage, paging_job_message
from pagerline.queue.redis import RedisJobQueue
from pagerline.queue.sqs import SQS_MAX_DELAY_SECONDS, SqsJobQueue


class JobQueue(Protocol):
    async def enqueue(self, message: JobMessage) -> str: ...

    async def ping(self) -> bool: ...


class PollingJobQueue(JobQueue, Protocol):
    """A queue the worker loop drains itself (memory and redis backends)."""

    async def dequeue_due(self, limit: int = 10) -> list[JobMessage]: ...

    async def ack(self, message: JobMessage) -> None: ...


_memory_enqueuer: InMemoryJobEnqueuer | None = None


def create_job_queue(settings: Settings) -> JobQueue:
    """Return the queue for ``settings.job_queue_backend``.

    The memory backend is a process-wide singleton so the API and an
    in-process worker share it.
    """
    global _memory_enqueuer

    backend = settings.job_queue_backend
    if backend == "memory":
        if _memory_enqueuer is None:
            _memory_enqueuer = InMemoryJobEnqueuer()
        return _memory_enqueuer

    if backend == "redis":
        return RedisJobQueue(
            settings.redis_url,
            key=settings.redis_queue_key,
            max_connections=settings.redis_max_connections,
            lease_seconds=settings.redis_lease_seconds,
        )

    if backend == "sqs":
        if not settings.sqs_queue_url:
            raise ConfigurationError("PAGERLINE_SQS_QUEUE_URL is required for the sqs backend")
        return SqsJobQueue(settings)

    raise ConfigurationError(
        f"Unsupported job queue backend: {backend}", {"backend": backend}
    )


__all__ = [
    "InMemoryJobEnqueuer",
    "JobMessage",
    "JobQueue",
    "PAGING_STEP_JOB",
    "PollingJobQueue",
    "RedisJobQueue",
    "SQS_MAX_DELAY_SECONDS",
    "SqsJobQueue",
    "create_job_queue",
    "paging_job_message",
]
