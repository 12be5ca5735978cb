from __future__ import annotations

import asyncio
import math
import time
from dataclasses import replace
from typing import Any, Mapping

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from pagerline.config import Settings, get_settings
from pagerline.core.errors import ConfigurationError, InfrastructureError
from pagerline.db.repositories import PagingRepository, RotationRepository
from pagerline.db.session import get_session, init_engine
from pagerline.domain.models import Channel
from pagerline.logging import bind_job_context, clear_job_context, configure_logging
from pagerline.paging.channels import ChannelDispatcher, build_dispatchers
from pagerline.paging.orchestrator import PagingOrchestrator, StepResult
from pagerline.queue import (
    PAGING_STEP_JOB,
    JobMessage,
    JobQueue,
    PollingJobQueue,
    create_job_queue,
)

logger = structlog.get_logger()


def build_orchestrator(
    session: AsyncSession,
    queue: JobQueue,
    settings: Settings,
    dispatchers: Mapping[Channel, ChannelDispatcher] | None = None,
) -> PagingOrchestrator:
    return PagingOrchestrator(
        store=PagingRepository(session),
        rotations=RotationRepository(session),
        dispatchers=dispatchers if dispatchers is not None else build_dispatchers(settings),
        queue=queue,
        settings=settings,
    )


async def process_job(
    message: JobMessage,
    settings: Settings,
    *,
    queue: JobQueue | None = None,
    dispatchers: Mapping[Channel, ChannelDispatcher] | None = None,
) -> StepResult | None:
    """Execute one queued job. Infrastructure errors propagate to the caller."""
    queue = queue or create_job_queue(settings)

    if message.job_type != PAGING_STEP_JOB:
        logger.warning("job_type_unknown", job_id=message.job_id, job_type=message.job_type)
        return None

    if message.not_before is not None:
        remaining = message.not_before - time.time()
        if remaining > 0:
            deferred = replace(message, delay_seconds=math.ceil(remaining), not_before=None)
            await queue.enqueue(deferred)
            logger.info("job_deferred", job_id=message.job_id, remaining_seconds=remaining)
            return None

    job = message.paging_job()
    bind_job_context(
        job_id=message.job_id,
        policy_id=job.policy_id,
        alert_group_id=job.alert_group_id,
        step_order=job.step_order,
        attempt_number=job.attempt_number,
    )
    result: StepResult | None = None
    try:
        async for session in get_session():
            orchestrator = build_orchestrator(session, queue, settings, dispatchers)
            try:
                result = await orchestrator.execute(job, session.commit)
            except Exception:
                await session.rollback()
                raise
            break
        if result is not None:
            logger.info(
                "job_completed",
                status=result.status.value,
                reason=result.reason,
                attempts=len(result.attempts),
                enqueued=len(result.enqueued),
            )
        return result
    finally:
        clear_job_context()


async def handle_event(event: dict[str, Any], settings: Settings) -> dict[str, Any]:
    """
    Handle SQS event with partial batch failure support.
    Returns batchItemFailures for failed messages.
    """
    records = event.get("Records", [])
    failed_message_ids = []
    queue = create_job_queue(settings)

    for record in records:
        message_id = record.get("messageId")
        try:
            message = JobMessage.from_message_body(record["body"])
            await process_job(message, settings, queue=queue)
        except Exception as exc:
            logger.error(
                "message_processing_failed",
                message_id=message_id,
                error=str(exc),
            )
            failed_message_ids.append(message_id)

    return {"batchItemFailures": [{"itemIdentifier": msg_id} for msg_id in failed_message_ids]}


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    settings = get_settings()
    configure_logging()
    init_engine(settings)

    logger.info(
        "lambda_invoked",
        request_id=getattr(context, "aws_request_id", "unknown"),
        record_count=len(event.get("Records", [])),
    )

    return asyncio.run(handle_event(event, settings))


async def _retry_or_drop(
    queue: JobQueue, message: JobMessage, settings: Settings, exc: Exception
) -> None:
    if message.delivery_attempt >= settings.job_max_attempts:
        logger.error(
            "job_dead_lettered",
            job_id=message.job_id,
            delivery_attempt=message.delivery_attempt,
            error=str(exc),
        )
        return
    backoff = 2**message.delivery_attempt
    retry = replace(
        message,
        delivery_attempt=message.delivery_attempt + 1,
        delay_seconds=backoff,
        not_before=None,
    )
    await queue.enqueue(retry)
    logger.warning(
        "job_retry_scheduled",
        job_id=message.job_id,
        delivery_attempt=retry.delivery_attempt,
        delay_seconds=backoff,
        error=str(exc),
    )


async def drain_once(
    queue: PollingJobQueue,
    settings: Settings,
    *,
    dispatchers: Mapping[Channel, ChannelDispatcher] | None = None,
    batch_size: int = 10,
) -> int:
    """Run every job due now; returns how many messages were taken off the queue.

    A job is acknowledged once it ran or its retry was queued. If the queue
    fails before that, the lease expires and the job is delivered again.
    """
    messages = await queue.dequeue_due(batch_size)
    for message in messages:
        try:
            await process_job(message, settings, queue=queue, dispatchers=dispatchers)
        except Exception as exc:
            await _retry_or_drop(queue, message, settings, exc)
        await queue.ack(message)
    return len(messages)


async def run_worker(
    settings: Settings,
    *,
    queue: JobQueue | None = None,
    dispatchers: Mapping[Channel, ChannelDispatcher] | None = None,
    stop: asyncio.Event | None = None,
) -> None:
    """Poll a memory or redis queue until ``stop`` is set."""
    queue = queue or create_job_queue(settings)
    if not hasattr(queue, "dequeue_due"):
        raise ConfigurationError(
            "The polling worker needs the memory or redis backend; "
            "SQS jobs are delivered to lambda_handler",
            {"backend": settings.job_queue_backend},
        )
    stop = stop or asyncio.Event()
    logger.info("worker_started", backend=settings.job_queue_backend)

    while not stop.is_set():
        try:
            processed = await drain_once(queue, settings, dispatchers=dispatchers)
        except InfrastructureError as exc:
            logger.warning("worker_queue_unavailable", error=str(exc))
            processed = 0
        if processed:
            continue
        try:
            await asyncio.wait_for(stop.wait(), timeout=settings.worker_poll_interval_seconds)
        except TimeoutError:
            pass

    logger.info("worker_stopped")
