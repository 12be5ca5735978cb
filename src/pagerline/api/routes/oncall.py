"""On-call query, rotation, layer, participant and override routes."""

from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from pagerline.api.deps import principal_dependency, session_dependency, workspace_dependency
from pagerline.api.schemas import (
    ApiModel,
    CurrentOnCallOut,
    LayerOut,
    OverrideOut,
    ParticipantOut,
    RotationOut,
    ShiftOut,
    TargetsOut,
)
from pagerline.config import Settings, get_settings
from pagerline.domain.models import Restrictions
from pagerline.oncall.service import OnCallService

router = APIRouter(prefix="/oncall")
logger = structlog.get_logger()


# -- Request Models --


class RotationCreate(ApiModel):
    name: str
    timezone: str = "UTC"
    description: str | None = None


class RotationUpdate(ApiModel):
    name: str | None = None
    timezone: str | None = None
    description: str | None = None


class LayerCreate(ApiModel):
    name: str | None = None
    order: int = 0
    handoff_interval_hours: int = 168
    starts_at: datetime
    ends_at: datetime | None = None
    restrictions: Restrictions | None = None
    is_shadow: bool = False


class LayerUpdate(ApiModel):
    name: str | None = None
    order: int | None = None
    handoff_interval_hours: int | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    restrictions: Restrictions | None = None
    is_shadow: bool | None = None


class ParticipantCreate(ApiModel):
    user_id: str
    position: int = 0


class OverrideCreate(ApiModel):
    user_id: str
    starts_at: datetime
    ends_at: datetime
    reason: str | None = None


class OverrideUpdate(ApiModel):
    user_id: str | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    reason: str | None = None


def _service(
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    settings: Settings = Depends(get_settings),  # noqa: B008
) -> OnCallService:
    return OnCallService(session, settings)


# -- Queries --


@router.get("/who", response_model=CurrentOnCallOut)
async def who_is_on_call(
    rotation_id: str = Query(alias="rotationId"),
    at: datetime | None = None,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> CurrentOnCallOut:
    """Primary on-call for a rotation, now or at ``at``."""
    current = await service.current_on_call(workspace_id, rotation_id, at)
    return CurrentOnCallOut.model_validate(current)


@router.get("/rotations/{rotation_id}/targets", response_model=TargetsOut)
async def paging_targets(
    rotation_id: str,
    at: datetime | None = None,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> TargetsOut:
    targets = await service.targets(workspace_id, rotation_id, at)
    return TargetsOut.model_validate(targets)


@router.get("/rotations/{rotation_id}/schedule", response_model=list[ShiftOut])
async def rotation_schedule(
    rotation_id: str,
    start: datetime = Query(alias="from"),
    end: datetime = Query(alias="to"),
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> list[ShiftOut]:
    shifts = await service.schedule(workspace_id, rotation_id, start, end)
    return [ShiftOut.model_validate(shift) for shift in shifts]


# -- Rotations --


@router.get("/rotations", response_model=list[RotationOut])
async def list_rotations(
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> list[RotationOut]:
    rotations = await service.list_rotations(workspace_id)
    return [RotationOut.model_validate(rotation) for rotation in rotations]


@router.post("/rotations", response_model=RotationOut, status_code=status.HTTP_201_CREATED)
async def create_rotation(
    body: RotationCreate,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    principal_id: str | None = Depends(principal_dependency),  # noqa: B008
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> RotationOut:
    rotation = await service.create_rotation(
        workspace_id,
        name=body.name,
        timezone=body.timezone,
        description=body.description,
        created_by=principal_id,
    )
    await session.commit()
    return RotationOut.model_validate(rotation)


@router.get("/rotations/{rotation_id}", response_model=RotationOut)
async def get_rotation(
    rotation_id: str,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> RotationOut:
    rotation = await service.get_rotation(workspace_id, rotation_id)
    return RotationOut.model_validate(rotation)


@router.put("/rotations/{rotation_id}", response_model=RotationOut)
async def update_rotation(
    rotation_id: str,
    body: RotationUpdate,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> RotationOut:
    rotation = await service.update_rotation(
        workspace_id, rotation_id, body.model_dump(exclude_unset=True)
    )
    await session.commit()
    return RotationOut.model_validate(rotation)


@router.delete("/rotations/{rotation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rotation(
    rotation_id: str,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> Response:
    await service.delete_rotation(workspace_id, rotation_id)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -- Layers and participants --


@router.post(
    "/rotations/{rotation_id}/layers",
    response_model=LayerOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_layer(
    rotation_id: str,
    body: LayerCreate,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> LayerOut:
    layer = await service.add_layer(
        workspace_id,
        rotation_id,
        name=body.name,
        order=body.order,
        handoff_interval_hours=body.handoff_interval_hours,
        starts_at=body.starts_at,
        ends_at=body.ends_at,
        restrictions=body.restrictions,
        is_shadow=body.is_shadow,
    )
    await session.commit()
    return LayerOut.model_validate(layer)


@router.put("/rotations/{rotation_id}/layers/{layer_id}", response_model=LayerOut)
async def update_layer(
    rotation_id: str,
    layer_id: str,
    body: LayerUpdate,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> LayerOut:
    changes = body.model_dump(exclude_unset=True)
    if "restrictions" in body.model_fields_set:
        changes["restrictions"] = body.restrictions
    layer = await service.update_layer(workspace_id, rotation_id, layer_id, changes)
    await session.commit()
    return LayerOut.model_validate(layer)


@router.delete(
    "/rotations/{rotation_id}/layers/{layer_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_layer(
    rotation_id: str,
    layer_id: str,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> Response:
    await service.delete_layer(workspace_id, rotation_id, layer_id)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/rotations/{rotation_id}/layers/{layer_id}/participants",
    response_model=ParticipantOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_participant(
    rotation_id: str,
    layer_id: str,
    body: ParticipantCreate,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> ParticipantOut:
    participant = await service.add_participant(
        workspace_id, rotation_id, layer_id, user_id=body.user_id, position=body.position
    )
    await session.commit()
    return ParticipantOut.model_validate(participant)


@router.delete(
    "/rotations/{rotation_id}/layers/{layer_id}/participants/{participant_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_participant(
    rotation_id: str,
    layer_id: str,
    participant_id: str,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> Response:
    await service.remove_participant(workspace_id, rotation_id, layer_id, participant_id)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -- Overrides --


@router.get("/rotations/{rotation_id}/overrides", response_model=list[OverrideOut])
async def list_overrides(
    rotation_id: str,
    starts_from: datetime | None = Query(default=None, alias="from"),
    starts_to: datetime | None = Query(default=None, alias="to"),
    user_ids: list[str] | None = Query(default=None, alias="userIds"),  # noqa: B008
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> list[OverrideOut]:
    overrides = await service.list_overrides(
        workspace_id,
        rotation_id,
        starts_from=starts_from,
        starts_to=starts_to,
        user_ids=user_ids,
    )
    return [OverrideOut.model_validate(override) for override in overrides]


@router.post(
    "/rotations/{rotation_id}/overrides",
    response_model=OverrideOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_override(
    rotation_id: str,
    body: OverrideCreate,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    principal_id: str | None = Depends(principal_dependency),  # noqa: B008
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> OverrideOut:
    override = await service.add_override(
        workspace_id,
        rotation_id,
        user_id=body.user_id,
        starts_at=body.starts_at,
        ends_at=body.ends_at,
        reason=body.reason,
        created_by=principal_id,
    )
    await session.commit()
    return OverrideOut.model_validate(override)


@router.put("/rotations/{rotation_id}/overrides/{override_id}", response_model=OverrideOut)
async def update_override(
    rotation_id: str,
    override_id: str,
    body: OverrideUpdate,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> OverrideOut:
    override = await service.update_override(
        workspace_id,
        rotation_id,
        override_id,
        user_id=body.user_id,
        starts_at=body.starts_at,
        ends_at=body.ends_at,
        reason=body.reason,
    )
    await session.commit()
    return OverrideOut.model_validate(override)


@router.delete(
    "/rotations/{rotation_id}/overrides/{override_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_override(
    rotation_id: str,
    override_id: str,
    workspace_id: str = Depends(workspace_dependency),  # noqa: B008
    session: AsyncSession = Depends(session_dependency),  # noqa: B008
    service: OnCallService = Depends(_service),  # noqa: B008
) -> Response:
    await service.delete_override(workspace_id, rotation_id, override_id)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
