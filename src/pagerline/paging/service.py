"""Paging policy management and the trigger entrypoint."""

from __future__ import annotations

from typing import Any, Mapping, Sequence
from uuid import uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from pagerline.core.errors import NotFoundError, ValidationError
from pagerline.db.repositories import PagingRepository, RotationRepository
from pagerline.domain.models import Channel, PagingAttempt, PagingJob, PagingPolicy, PagingStep
from pagerline.queue import JobQueue, paging_job_message

logger = structlog.get_logger()

_POLICY_FIELDS = frozenset({"name", "description", "enabled", "rotation_id"})
_STEP_INTS = ("delay_seconds", "repeat_count", "repeat_interval_seconds")


def build_steps(raw_steps: Sequence[Mapping[str, Any]]) -> list[PagingStep]:
    """Validate step definitions; ``order`` defaults to the list position."""
    if not raw_steps:
        raise ValidationError("At least one paging step is required")

    steps: list[PagingStep] = []
    for index, raw in enumerate(raw_steps):
        channels = list(raw.get("channels") or [])
        if not channels:
            raise ValidationError(f"Paging step {index} needs at least one channel")
        for channel in channels:
            try:
                Channel(channel)
            except ValueError:
                raise ValidationError(f"Invalid paging channel: {channel}") from None

        values = {name: raw.get(name) or 0 for name in _STEP_INTS}
        negative = [name for name, value in values.items() if value < 0]
        if negative:
            raise ValidationError(
                f"Paging step {index} has negative {', '.join(negative)}", {"step": index}
            )
        order = raw.get("order")
        if order is None:
            order = index
        if order < 0:
            raise ValidationError("Paging step order must not be negative", {"step": index})
        steps.append(
            PagingStep(
                order=order,
                channels=[Channel(channel) for channel in channels],
                **values,
            )
        )

    orders = [step.order for step in steps]
    if len(set(orders)) != len(orders):
        raise ValidationError("Paging step orders must be unique", {"orders": orders})
    return steps


class PagingService:
    """Policy CRUD and trigger. Writes are flushed; the caller commits."""

    def __init__(self, session: AsyncSession, queue: JobQueue | None = None):
        self.repository = PagingRepository(session)
        self.rotations = RotationRepository(session)
        self.queue = queue

    async def list_policies(self, workspace_id: str) -> list[PagingPolicy]:
        return await self.repository.list_policies(workspace_id)

    async def get_policy(self, workspace_id: str, policy_id: str) -> PagingPolicy:
        policy = await self.repository.get_policy(workspace_id, policy_id)
        if policy is None:
            raise NotFoundError("Paging policy not found", {"policy_id": policy_id})
        return policy

    async def create_policy(
        self,
        workspace_id: str,
        *,
        rotation_id: str,
        name: str,
        steps: Sequence[Mapping[str, Any]],
        description: str | None = None,
        enabled: bool = True,
    ) -> PagingPolicy:
        built = build_steps(steps)
        await self._require_rotation(workspace_id, rotation_id)
        policy = await self.repository.create_policy(
            PagingPolicy(
                id=str(uuid4()),
                workspace_id=workspace_id,
                rotation_id=rotation_id,
                name=name,
                description=description,
                enabled=enabled,
                steps=built,
            )
        )
        logger.info(
            "paging_policy_created",
            workspace_id=workspace_id,
            policy_id=policy.id,
            step_count=len(policy.steps),
        )
        return policy

    async def update_policy(
        self,
        workspace_id: str,
        policy_id: str,
        changes: dict[str, Any],
        steps: Sequence[Mapping[str, Any]] | None = None,
    ) -> PagingPolicy:
        unknown = set(changes) - _POLICY_FIELDS
        if unknown:
            raise ValidationError(f"Unknown policy fields: {', '.join(sorted(unknown))}")
        built = build_steps(steps) if steps is not None else None
        if changes.get("rotation_id"):
            await self._require_rotation(workspace_id, changes["rotation_id"])
        policy = await self.repository.update_policy(workspace_id, policy_id, changes, built)
        if policy is None:
            raise NotFoundError("Paging policy not found", {"policy_id": policy_id})
        return policy

    async def delete_policy(self, workspace_id: str, policy_id: str) -> None:
        if not await self.repository.delete_policy(workspace_id, policy_id):
            raise NotFoundError("Paging policy not found", {"policy_id": policy_id})
        logger.info("paging_policy_deleted", workspace_id=workspace_id, policy_id=policy_id)

    async def trigger(
        self,
        workspace_id: str,
        policy_id: str,
        alert_group_id: str,
        *,
        requested_by: str | None = None,
    ) -> dict[str, Any]:
        """Queue the first step of ``policy_id`` for ``alert_group_id``."""
        if self.queue is None:
            raise RuntimeError("PagingService.trigger needs a job queue")

        policy = await self.repository.get_policy(workspace_id, policy_id)
        if policy is None or not policy.enabled:
            raise NotFoundError("Paging policy not found or disabled", {"policy_id": policy_id})
        steps = policy.ordered_steps()
        if not steps:
            raise ValidationError("Paging policy has no steps configured", {"policy_id": policy_id})
        alert = await self.repository.get_alert_group(workspace_id, alert_group_id)
        if alert is None:
            raise NotFoundError("Alert group not found", {"alert_group_id": alert_group_id})

        first = steps[0]
        job = PagingJob(
            workspace_id=workspace_id,
            policy_id=policy.id,
            alert_group_id=alert.id,
            step_order=first.order,
            attempt_number=1,
        )
        message = paging_job_message(
            job, delay_seconds=first.delay_seconds, requested_by=requested_by
        )
        await self.queue.enqueue(message)
        logger.info(
            "paging_triggered",
            workspace_id=workspace_id,
            policy_id=policy.id,
            alert_group_id=alert.id,
            job_id=message.job_id,
            step_order=first.order,
            delay_seconds=message.delay_seconds,
        )
        return {
            "queued": True,
            "policy_id": policy.id,
            "step_order": first.order,
            "job_id": message.job_id,
        }

    async def list_attempts(self, workspace_id: str, alert_group_id: str) -> list[PagingAttempt]:
        if await self.repository.get_alert_group(workspace_id, alert_group_id) is None:
            raise NotFoundError("Alert group not found", {"alert_group_id": alert_group_id})
        return await self.repository.list_attempts(alert_group_id)

    async def _require_rotation(self, workspace_id: str, rotation_id: str) -> None:
        if await self.rotations.get_rotation(workspace_id, rotation_id) is None:
            raise NotFoundError("Rotation not found", {"rotation_id": rotation_id})
