from __future__ import annotations

import time
from typing import Callable

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from pagerline.core.errors import InfrastructureError
from pagerline.queue.models import JobMessage

logger = structlog.get_logger()

# Move expired leases back to the ready set, then lease every due member by
# moving it to the processing set scored at its lease expiry. Runs atomically
# so two workers never hold the same job.
_LEASE_DUE_SCRIPT = """
local expired = redis.call('ZRANGEBYSCORE', KEYS[2], '-inf', ARGV[1])
for _, body in ipairs(expired) do
    redis.call('ZREM', KEYS[2], body)
    redis.call('ZADD', KEYS[1], ARGV[1], body)
end
local due = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, ARGV[2])
for _, body in ipairs(due) do
    redis.call('ZREM', KEYS[1], body)
    redis.call('ZADD', KEYS[2], ARGV[3], body)
end
return due
"""


class RedisJobQueue:
    """Delayed job queue on a Redis sorted set scored by ready time.

    ``dequeue_due`` leases jobs instead of deleting them: a leased job sits in
    ``<key>:processing`` until ``ack`` removes it, and returns to the ready set
    if the lease runs out first. Delivery is therefore at least once.
    """

    def __init__(
        self,
        redis_url: str,
        *,
        key: str = "pagerline:jobs",
        max_connections: int = 10,
        lease_seconds: int = 300,
        redis_client: aioredis.Redis | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._key = key
        self._processing_key = f"{key}:processing"
        self._lease_seconds = lease_seconds
        self._clock = clock
        self._leased: dict[str, str] = {}
        self._pool: aioredis.ConnectionPool | None = None
        self._client: aioredis.Redis | None = redis_client

        if redis_client is None:
            self._pool = aioredis.ConnectionPool.from_url(
                redis_url,
                max_connections=max_connections,
                decode_responses=True,
            )

    async def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.Redis(connection_pool=self._pool)
        return self._client

    async def enqueue(self, message: JobMessage) -> str:
        client = await self._get_client()
        ready_at = self._clock() + max(message.delay_seconds, 0)
        try:
            await client.zadd(self._key, {message.to_message_body(): ready_at})
        except RedisError as exc:
            raise InfrastructureError(
                f"Failed to enqueue job: {exc}", {"job_id": message.job_id}
            ) from exc
        logger.debug("redis_job_enqueued", job_id=message.job_id, ready_at=ready_at)
        return message.job_id

    async def dequeue_due(self, limit: int = 10) -> list[JobMessage]:
        client = await self._get_client()
        now = self._clock()
        script = client.register_script(_LEASE_DUE_SCRIPT)
        try:
            bodies = await script(
                keys=[self._key, self._processing_key],
                args=[now, limit, now + self._lease_seconds],
            )
        except RedisError as exc:
            raise InfrastructureError(f"Failed to dequeue jobs: {exc}") from exc

        messages: list[JobMessage] = []
        for body in bodies:
            try:
                message = JobMessage.from_message_body(body)
            except (ValueError, KeyError, TypeError) as exc:
                logger.error("job_body_invalid", error=str(exc), body=body[:200])
                await self._release(body)
                continue
            self._leased[message.job_id] = body
            messages.append(message)
        return messages

    async def ack(self, message: JobMessage) -> None:
        """Drop the lease on a job this worker has finished with."""
        body = self._leased.pop(message.job_id, None)
        if body is not None:
            await self._release(body)

    async def _release(self, body: str) -> None:
        client = await self._get_client()
        try:
            await client.zrem(self._processing_key, body)
        except RedisError as exc:
            raise InfrastructureError(f"Failed to release job lease: {exc}") from exc

    async def ping(self) -> bool:
        client = await self._get_client()
        try:
            return bool(await client.ping())
        except RedisError as exc:
            raise InfrastructureError(f"Redis unavailable: {exc}") from exc

    async def size(self) -> int:
        client = await self._get_client()
        return int(await client.zcard(self._key))

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
        if self._pool:
            await self._pool.disconnect()
