"""Paging policy, trigger and attempt history routes."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from pagerline.api.deps import (
    get_job_enqueuer,
    principal_dependency,
    session_dependency,
    workspace_dependency,
)
from pagerline.api.schemas import ApiModel, PagingAttemptOut, PagingPolicyOut
from pagerline.paging.service import PagingService
from pagerline.queue import JobQueue

router = APIRouter(prefix="/paging")
logger = structlog.get_logger()


# -- Request / Response Models --


class PagingStepIn(ApiModel):
    order: int | None = None
    # Kept as plain strings so an unknown channel gets a named rejection.
    channels: list[str]
    delay_seconds: int = 0
    repeat_count: int = 0
    repeat_interval_seconds: int = 0


class PolicyCreate(ApiModel):
    rotation_id: str
    name: str
    description: str | None = None
    enabled: bool = True
    steps: list[PagingStepIn]


class PolicyUpdate(ApiModel):
    rotation_id: str | None = None
    name: str | None = None
    description: str | None = None
    enabled: bool | None = None
    steps: list[PagingStepIn] | None = None


class TriggerRequest(ApiModel):
    policy_id: str
    alert_group_id: str


class TriggerResponse(ApiModel):
    queued: bool
    policy_id: str
    step_order: int
    job_id: str


def _service(
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    queue: JobQueue = Depends(get_job_enqueuer),  # noqa: B008
) -> PagingService:
    return PagingService(session, queue)


def _raw_steps(steps: list[PagingStepIn]) -> list[dict]:
    return [step.model_dump() for step in steps]


# -- Endpoints --


@router.get("/policies", response_model=list[PagingPolicyOut])
async def list_policies(
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    service: PagingService = Depends(_service),  # noqa: B008
) -> list[PagingPolicyOut]:
    policies = await service.list_policies(workspace_id)
    return [PagingPolicyOut.model_validate(policy) for policy in policies]


@router.post("/policies", response_model=PagingPolicyOut, status_code=status.HTTP_201_CREATED)
async def create_policy(
    body: PolicyCreate,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    service: PagingService = Depends(_service),  # noqa: B008
) -> PagingPolicyOut:
    policy = await service.create_policy(
        workspace_id,
        rotation_id=body.rotation_id,
        name=body.name,
        description=body.description,
        enabled=body.enabled,
        steps=_raw_steps(body.steps),
    )
    await session.commit()
    return PagingPolicyOut.model_validate(policy)


@router.get("/policies/{policy_id}", response_model=PagingPolicyOut)
async def get_policy(
    policy_id: str,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    service: PagingService = Depends(_service),  # noqa: B008
) -> PagingPolicyOut:
    policy = await service.get_policy(workspace_id, policy_id)
    return PagingPolicyOut.model_validate(policy)


@router.put("/policies/{policy_id}", response_model=PagingPolicyOut)
async def update_policy(
    policy_id: str,
    body: PolicyUpdate,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    service: PagingService = Depends(_service),  # noqa: B008
) -> PagingPolicyOut:
    changes = body.model_dump(exclude_unset=True, exclude={"steps"})
    steps = _raw_steps(body.steps) if body.steps is not None else None
    policy = await service.update_policy(workspace_id, policy_id, changes, steps)
    await session.commit()
    return PagingPolicyOut.model_validate(policy)


@router.delete("/policies/{policy_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_policy(
    policy_id: str,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    service: PagingService = Depends(_service),  # noqa: B008
) -> Response:
    await service.delete_policy(workspace_id, policy_id)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/trigger", response_model=TriggerResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_paging(
    body: TriggerRequest,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    principal_id: str | None = Depends(principal_dependency),  # noqa: B008
    service: PagingService = Depends(_service),  # noqa: B008
) -> TriggerResponse:
    """Queue the first step of a policy for an alert group."""
    result = await service.trigger(
        workspace_id, body.policy_id, body.alert_group_id, requested_by=principal_id
    )
    return TriggerResponse(**result)


@router.get("/alert-groups/{alert_group_id}/attempts", response_model=list[PagingAttemptOut])
async def list_attempts(
    alert_group_id: str,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    service: PagingService = Depends(_service),  # noqa: B008
) -> list[PagingAttemptOut]:
    attempts = await service.list_attempts(workspace_id, alert_group_id)
    return [PagingAttemptOut.model_validate(attempt) for attempt in attempts]
