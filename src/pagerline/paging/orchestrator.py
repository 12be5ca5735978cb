"""
Paging escalation state machine.

One job is one firing of one step of a policy for one alert group. A job
re-reads the policy, the alert group and the rotation when it runs, so
acknowledging or resolving an alert starves every job still waiting in the
queue without touching the queue. Steps chain forward only from their first
firing; repeats extend the current step and never fork the chain.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Awaitable, Callable, Mapping, Protocol, Sequence

import structlog

from pagerline.config import Settings
from pagerline.domain.models import (
    SHADOW_ACK_SOURCE,
    AlertGroup,
    AttemptStatus,
    Channel,
    OnCallTargets,
    PagingAttempt,
    PagingJob,
    PagingPolicy,
    PagingStep,
    Rotation,
    User,
    utcnow,
)
from pagerline.oncall.resolver import resolve_targets
from pagerline.paging.channels import (
    ACK_TOKEN_CHANNELS,
    ChannelDispatcher,
    DispatchResult,
    PageMessage,
    generate_ack_token,
)
from pagerline.queue import JobQueue, paging_job_message

logger = structlog.get_logger()

NO_TARGET_MESSAGE = "No on-call target"


class PagingStore(Protocol):
    async def get_policy(self, workspace_id: str, policy_id: str) -> PagingPolicy | None: ...

    async def get_alert_group(
        self, workspace_id: str, alert_group_id: str
    ) -> AlertGroup | None: ...

    async def record_attempts(self, attempts: Sequence[PagingAttempt]) -> None: ...


class RotationSource(Protocol):
    async def get_rotation(self, workspace_id: str, rotation_id: str) -> Rotation | None: ...


class StepStatus(StrEnum):
    skipped = "skipped"
    dispatched = "dispatched"


@dataclass(frozen=True, slots=True)
class FollowUp:
    job: PagingJob
    delay_seconds: int
    kind: str  # "repeat" or "next_step"


@dataclass(slots=True)
class StepResult:
    status: StepStatus
    reason: str | None = None
    attempts: list[PagingAttempt] = field(default_factory=list)
    follow_ups: list[FollowUp] = field(default_factory=list)
    enqueued: list[str] = field(default_factory=list)

    @classmethod
    def skipped(cls, reason: str) -> StepResult:
        return cls(status=StepStatus.skipped, reason=reason)


class PagingOrchestrator:
    """Runs paging jobs: guard, resolve, dispatch, record, schedule follow-ups."""

    def __init__(
        self,
        store: PagingStore,
        rotations: RotationSource,
        dispatchers: Mapping[Channel, ChannelDispatcher],
        queue: JobQueue,
        settings: Settings,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._rotations = rotations
        self._dispatchers = dispatchers
        self._queue = queue
        self._settings = settings
        self._clock = clock

    async def execute(self, job: PagingJob, commit: Callable[[], Awaitable[None]]) -> StepResult:
        """Run ``job``, commit its attempts, then enqueue its follow-ups.

        Follow-ups go out only after the commit succeeded, so a retried
        delivery never leaves a second chain behind a rolled-back one.
        """
        result = await self.run(job)
        await commit()
        for follow_up in result.follow_ups:
            message = paging_job_message(follow_up.job, delay_seconds=follow_up.delay_seconds)
            result.enqueued.append(await self._queue.enqueue(message))
            logger.info(
                "paging_follow_up_enqueued",
                kind=follow_up.kind,
                job_id=message.job_id,
                step_order=follow_up.job.step_order,
                attempt_number=follow_up.job.attempt_number,
                delay_seconds=follow_up.delay_seconds,
            )
        return result

    async def run(self, job: PagingJob) -> StepResult:
        """Evaluate one job and stage its attempts; nothing is committed or enqueued."""
        log = logger.bind(
            policy_id=job.policy_id,
            alert_group_id=job.alert_group_id,
            step_order=job.step_order,
            attempt_number=job.attempt_number,
        )

        policy = await self._store.get_policy(job.workspace_id, job.policy_id)
        if policy is None:
            return self._skip(log, "policy_missing")
        if not policy.enabled:
            return self._skip(log, "policy_disabled")
        step = policy.step(job.step_order)
        if step is None:
            return self._skip(log, "step_missing")

        alert = await self._store.get_alert_group(job.workspace_id, job.alert_group_id)
        if alert is None:
            return self._skip(log, "alert_missing")
        if alert.halts_paging:
            return self._skip(log, "alert_inactive", alert_status=alert.status.value)

        now = self._clock()
        targets = await self._targets(job.workspace_id, policy.rotation_id, now)
        alert_url = f"{self._settings.frontend_url.rstrip('/')}/dashboard/alerts/{alert.id}"

        attempts = await self._dispatch_primary(job, step, alert, alert_url, targets.primary)
        for shadow_user in targets.shadow:
            attempts.extend(await self._dispatch_shadow(job, step, alert, alert_url, shadow_user))

        await self._store.record_attempts(attempts)
        log.info(
            "paging_attempts_recorded",
            primary_user_id=targets.primary.id if targets.primary else None,
            shadow_count=len(targets.shadow),
            sent=sum(1 for a in attempts if a.status is AttemptStatus.SENT),
            failed=sum(1 for a in attempts if a.status is AttemptStatus.FAILED),
        )

        return StepResult(
            status=StepStatus.dispatched,
            attempts=attempts,
            follow_ups=self._plan_follow_ups(job, step, policy),
        )

    async def _targets(self, workspace_id: str, rotation_id: str, now: datetime) -> OnCallTargets:
        rotation = await self._rotations.get_rotation(workspace_id, rotation_id)
        if rotation is None:
            logger.warning("paging_rotation_missing", rotation_id=rotation_id)
            return OnCallTargets()
        return resolve_targets(rotation, now)

    async def _dispatch_primary(
        self,
        job: PagingJob,
        step: PagingStep,
        alert: AlertGroup,
        alert_url: str,
        target: User | None,
    ) -> list[PagingAttempt]:
        attempts: list[PagingAttempt] = []
        for channel in step.channels:
            if target is None:
                result = DispatchResult.failed(NO_TARGET_MESSAGE)
            else:
                token = generate_ack_token() if channel in ACK_TOKEN_CHANNELS else None
                message = PageMessage(
                    alert=alert, alert_url=alert_url, step_order=step.order, ack_token=token
                )
                result = await self._send(channel, target, message)
            attempts.append(self._attempt(job, channel, target, result))
        return attempts

    async def _dispatch_shadow(
        self,
        job: PagingJob,
        step: PagingStep,
        alert: AlertGroup,
        alert_url: str,
        target: User,
    ) -> list[PagingAttempt]:
        message = PageMessage(alert=alert, alert_url=alert_url, step_order=step.order, shadow=True)
        attempts: list[PagingAttempt] = []
        for channel in step.channels:
            result = await self._send(channel, target, message)
            attempts.append(
                self._attempt(job, channel, target, result, ack_source=SHADOW_ACK_SOURCE)
            )
        return attempts

    async def _send(self, channel: Channel, target: User, message: PageMessage) -> DispatchResult:
        dispatcher = self._dispatchers.get(channel)
        if dispatcher is None:
            return DispatchResult.failed("Channel not configured")
        try:
            result = await dispatcher.send(target, message)
        except Exception as exc:
            logger.warning(
                "channel_dispatch_failed",
                channel=channel.value,
                target_user_id=target.id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return DispatchResult.failed(str(exc) or type(exc).__name__)
        if result.status is not AttemptStatus.SENT:
            # A token is only worth keeping if the page carrying it went out.
            return DispatchResult.failed(result.error_message or "Unknown error")
        return result

    def _attempt(
        self,
        job: PagingJob,
        channel: Channel,
        target: User | None,
        result: DispatchResult,
        *,
        ack_source: str | None = None,
    ) -> PagingAttempt:
        return PagingAttempt(
            policy_id=job.policy_id,
            alert_group_id=job.alert_group_id,
            channel=channel,
            status=result.status,
            target_user_id=target.id if target else None,
            step_order=job.step_order,
            attempt_number=job.attempt_number,
            error_message=result.error_message,
            ack_token=result.ack_token,
            ack_source=ack_source,
            completed_at=self._clock(),
        )

    def _plan_follow_ups(
        self, job: PagingJob, step: PagingStep, policy: PagingPolicy
    ) -> list[FollowUp]:
        follow_ups: list[FollowUp] = []

        # A step fires 1 + repeat_count times: repeat_count=2 fires attempts 1, 2
        # and 3. Only attempt 1 schedules the next step.
        if job.attempt_number <= step.repeat_count:
            interval = (
                step.repeat_interval_seconds
                or self._settings.paging_default_repeat_interval_seconds
            )
            follow_ups.append(
                FollowUp(job=job.next_attempt(), delay_seconds=interval, kind="repeat")
            )

        if job.attempt_number == 1:
            next_step = policy.step(job.step_order + 1)
            if next_step is not None:
                follow_ups.append(
                    FollowUp(
                        job=job.for_step(next_step.order),
                        delay_seconds=max(next_step.delay_seconds, 0),
                        kind="next_step",
                    )
                )

        return follow_ups

    @staticmethod
    def _skip(log: structlog.stdlib.BoundLogger, reason: str, **context: str) -> StepResult:
        log.info("paging_step_skipped", reason=reason, **context)
        return StepResult.skipped(reason)
