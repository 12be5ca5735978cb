from __future__ import annotations

import time
from dataclasses import replace

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from pagerline.config import Settings
from pagerline.core.errors import ConfigurationError, InfrastructureError
from pagerline.queue.models import JobMessage

# SQS rejects DelaySeconds above 15 minutes.
SQS_MAX_DELAY_SECONDS = 900


class SqsJobQueue:
    """Send paging jobs to SQS.

    Delays beyond the SQS maximum are split: the message is delivered after
    the maximum delay carrying ``not_before`` and the worker re-enqueues the
    remainder. FIFO queues are refused: they ignore per-message delays and
    deduplicate the re-enqueued retry of a job under its original ID.
    """

    def __init__(self, settings: Settings) -> None:
        if (settings.sqs_queue_url or "").endswith(".fifo"):
            raise ConfigurationError(
                "FIFO queues cannot delay individual paging jobs; use a standard SQS queue",
                {"queue_url": settings.sqs_queue_url},
            )
        self._settings = settings

    async def enqueue(self, message: JobMessage) -> str:
        delay = max(message.delay_seconds, 0)
        if delay > SQS_MAX_DELAY_SECONDS:
            message = replace(message, not_before=time.time() + delay)
            delay = SQS_MAX_DELAY_SECONDS

        payload = {
            "QueueUrl": self._settings.sqs_queue_url or "",
            "MessageBody": message.to_message_body(),
            "DelaySeconds": delay,
        }

        session = aioboto3.Session(region_name=self._settings.aws_region)
        try:
            async with session.client("sqs") as client:
                response = await client.send_message(**payload)
        except (BotoCoreError, ClientError) as exc:
            raise InfrastructureError(
                f"Failed to enqueue job: {exc}", {"job_id": message.job_id}
            ) from exc
        return response["MessageId"]

    async def ping(self) -> bool:
        session = aioboto3.Session(region_name=self._settings.aws_region)
        try:
            async with session.client("sqs") as client:
                await client.get_queue_attributes(
                    QueueUrl=self._settings.sqs_queue_url or "", AttributeNames=["QueueArn"]
                )
        except (BotoCoreError, ClientError) as exc:
            raise InfrastructureError(f"SQS unavailable: {exc}") from exc
        return True
