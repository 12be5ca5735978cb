"""Rotation management and on-call queries backed by the database."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Sequence
from uuid import uuid4
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from pagerline.config import Settings, get_settings
from pagerline.core.errors import NotFoundError, ValidationError
from pagerline.db.repositories import RotationRepository
from pagerline.domain.models import (
    CurrentOnCall,
    Layer,
    OnCallTargets,
    Override,
    Participant,
    Restrictions,
    Rotation,
    ScheduledShift,
    as_utc,
    utcnow,
)
from pagerline.oncall.resolver import resolve_current, resolve_targets
from pagerline.oncall.schedule import project_schedule

logger = structlog.get_logger()

_ROTATION_FIELDS = frozenset({"name", "timezone", "description"})
_LAYER_FIELDS = frozenset(
    {"name", "order", "handoff_interval_hours", "starts_at", "ends_at", "restrictions", "is_shadow"}
)


def _check_timezone(name: str) -> None:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone: {name}", {"timezone": name}) from exc


def _check_layer(layer: Layer) -> None:
    if layer.ends_at is not None and layer.ends_at <= layer.starts_at:
        raise ValidationError("Layer end must be after start", {"layer_id": layer.id})


def _build_layer(values: dict[str, Any]) -> Layer:
    handoff = values.get("handoff_interval_hours")
    if isinstance(handoff, int) and handoff < 1:
        raise ValidationError("Handoff interval must be at least 1 hour")
    try:
        layer = Layer.model_validate(values)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid layer: {exc}") from exc
    _check_layer(layer)
    return layer


class OnCallService:
    """Rotation CRUD plus the who-is-on-call and schedule queries.

    Writes are flushed but never committed; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.repository = RotationRepository(session)
        self.settings = settings or get_settings()

    async def list_rotations(self, workspace_id: str) -> list[Rotation]:
        return await self.repository.list_rotations(workspace_id)

    async def get_rotation(self, workspace_id: str, rotation_id: str) -> Rotation:
        rotation = await self.repository.get_rotation(workspace_id, rotation_id)
        if rotation is None:
            raise NotFoundError("Rotation not found", {"rotation_id": rotation_id})
        return rotation

    async def create_rotation(
        self,
        workspace_id: str,
        *,
        name: str,
        timezone: str = "UTC",
        description: str | None = None,
        created_by: str | None = None,
    ) -> Rotation:
        _check_timezone(timezone)
        rotation = await self.repository.create_rotation(
            workspace_id,
            name=name,
            timezone=timezone,
            description=description,
            created_by=created_by,
        )
        logger.info("rotation_created", workspace_id=workspace_id, rotation_id=rotation.id)
        return rotation

    async def update_rotation(
        self, workspace_id: str, rotation_id: str, changes: dict[str, Any]
    ) -> Rotation:
        unknown = set(changes) - _ROTATION_FIELDS
        if unknown:
            raise ValidationError(f"Unknown rotation fields: {', '.join(sorted(unknown))}")
        if changes.get("timezone") is not None:
            _check_timezone(changes["timezone"])
        rotation = await self.repository.update_rotation(workspace_id, rotation_id, changes)
        if rotation is None:
            raise NotFoundError("Rotation not found", {"rotation_id": rotation_id})
        return rotation

    async def delete_rotation(self, workspace_id: str, rotation_id: str) -> None:
        if not await self.repository.delete_rotation(workspace_id, rotation_id):
            raise NotFoundError("Rotation not found", {"rotation_id": rotation_id})
        logger.info("rotation_deleted", workspace_id=workspace_id, rotation_id=rotation_id)

    async def add_layer(
        self,
        workspace_id: str,
        rotation_id: str,
        *,
        starts_at: datetime,
        name: str | None = None,
        order: int = 0,
        handoff_interval_hours: int = 168,
        ends_at: datetime | None = None,
        restrictions: Restrictions | dict[str, Any] | None = None,
        is_shadow: bool = False,
    ) -> Layer:
        await self.get_rotation(workspace_id, rotation_id)
        layer = _build_layer(
            {
                "id": str(uuid4()),
                "rotation_id": rotation_id,
                "name": name,
                "order": order,
                "handoff_interval_hours": handoff_interval_hours,
                "starts_at": starts_at,
                "ends_at": ends_at,
                "restrictions": restrictions,
                "is_shadow": is_shadow,
            }
        )
        created = await self.repository.add_layer(rotation_id, layer)
        logger.info(
            "layer_created",
            rotation_id=rotation_id,
            layer_id=created.id,
            is_shadow=created.is_shadow,
        )
        return created

    async def update_layer(
        self, workspace_id: str, rotation_id: str, layer_id: str, changes: dict[str, Any]
    ) -> Layer:
        unknown = set(changes) - _LAYER_FIELDS
        if unknown:
            raise ValidationError(f"Unknown layer fields: {', '.join(sorted(unknown))}")
        existing = await self._layer(workspace_id, rotation_id, layer_id)
        values = existing.model_dump(exclude={"participants"})
        values.update(changes)
        layer = _build_layer(values)
        updated = await self.repository.update_layer(rotation_id, layer_id, layer)
        if updated is None:
            raise NotFoundError("Layer not found", {"layer_id": layer_id})
        return updated

    async def delete_layer(self, workspace_id: str, rotation_id: str, layer_id: str) -> None:
        await self.get_rotation(workspace_id, rotation_id)
        if not await self.repository.delete_layer(rotation_id, layer_id):
            raise NotFoundError("Layer not found", {"layer_id": layer_id})

    async def add_participant(
        self,
        workspace_id: str,
        rotation_id: str,
        layer_id: str,
        *,
        user_id: str,
        position: int = 0,
    ) -> Participant:
        await self._layer(workspace_id, rotation_id, layer_id)
        user = await self.repository.get_user(workspace_id, user_id)
        if user is None:
            raise NotFoundError("User not found", {"user_id": user_id})
        return await self.repository.add_participant(layer_id, user, position)

    async def remove_participant(
        self, workspace_id: str, rotation_id: str, layer_id: str, participant_id: str
    ) -> None:
        await self._layer(workspace_id, rotation_id, layer_id)
        if not await self.repository.delete_participant(layer_id, participant_id):
            raise NotFoundError("Participant not found", {"participant_id": participant_id})

    async def list_overrides(
        self,
        workspace_id: str,
        rotation_id: str,
        *,
        starts_from: datetime | None = None,
        starts_to: datetime | None = None,
        user_ids: Sequence[str] | None = None,
    ) -> list[Override]:
        await self.get_rotation(workspace_id, rotation_id)
        return await self.repository.list_overrides(
            rotation_id,
            starts_from=as_utc(starts_from) if starts_from else None,
            starts_to=as_utc(starts_to) if starts_to else None,
            user_ids=user_ids,
        )

    async def add_override(
        self,
        workspace_id: str,
        rotation_id: str,
        *,
        user_id: str,
        starts_at: datetime,
        ends_at: datetime,
        reason: str | None = None,
        created_by: str | None = None,
    ) -> Override:
        starts_at, ends_at = as_utc(starts_at), as_utc(ends_at)
        if ends_at <= starts_at:
            raise ValidationError("Override end must be after start")
        await self.get_rotation(workspace_id, rotation_id)
        user = await self.repository.get_user(workspace_id, user_id)
        if user is None:
            raise NotFoundError("User not found", {"user_id": user_id})
        override = await self.repository.add_override(
            rotation_id,
            user,
            starts_at=starts_at,
            ends_at=ends_at,
            reason=reason,
            created_by=created_by,
        )
        logger.info(
            "override_created",
            rotation_id=rotation_id,
            override_id=override.id,
            user_id=user_id,
        )
        return override

    async def update_override(
        self,
        workspace_id: str,
        rotation_id: str,
        override_id: str,
        *,
        user_id: str | None = None,
        starts_at: datetime | None = None,
        ends_at: datetime | None = None,
        reason: str | None = None,
    ) -> Override:
        await self.get_rotation(workspace_id, rotation_id)
        existing = await self.repository.get_override(rotation_id, override_id)
        if existing is None:
            raise NotFoundError("Override not found", {"override_id": override_id})

        new_start = as_utc(starts_at) if starts_at else existing.starts_at
        new_end = as_utc(ends_at) if ends_at else existing.ends_at
        if new_end <= new_start:
            raise ValidationError("Override end must be after start")

        user = None
        if user_id is not None and user_id != existing.user.id:
            user = await self.repository.get_user(workspace_id, user_id)
            if user is None:
                raise NotFoundError("User not found", {"user_id": user_id})

        updated = await self.repository.update_override(
            rotation_id,
            override_id,
            user=user,
            starts_at=new_start,
            ends_at=new_end,
            reason=reason if reason is not None else existing.reason,
        )
        if updated is None:
            raise NotFoundError("Override not found", {"override_id": override_id})
        return updated

    async def delete_override(self, workspace_id: str, rotation_id: str, override_id: str) -> None:
        await self.get_rotation(workspace_id, rotation_id)
        if not await self.repository.delete_override(rotation_id, override_id):
            raise NotFoundError("Override not found", {"override_id": override_id})

    async def current_on_call(
        self, workspace_id: str, rotation_id: str, at: datetime | None = None
    ) -> CurrentOnCall:
        rotation = await self.get_rotation(workspace_id, rotation_id)
        return resolve_current(rotation, as_utc(at) if at else utcnow())

    async def targets(
        self, workspace_id: str, rotation_id: str, at: datetime | None = None
    ) -> OnCallTargets:
        rotation = await self.get_rotation(workspace_id, rotation_id)
        return resolve_targets(rotation, as_utc(at) if at else utcnow())

    async def schedule(
        self, workspace_id: str, rotation_id: str, start: datetime, end: datetime
    ) -> list[ScheduledShift]:
        start, end = as_utc(start), as_utc(end)
        check_schedule_range(start, end, self.settings.schedule_max_range_days)
        rotation = await self.get_rotation(workspace_id, rotation_id)
        return project_schedule(rotation, start, end)

    async def _layer(self, workspace_id: str, rotation_id: str, layer_id: str) -> Layer:
        await self.get_rotation(workspace_id, rotation_id)
        layer = await self.repository.get_layer(rotation_id, layer_id)
        if layer is None:
            raise NotFoundError("Layer not found", {"layer_id": layer_id})
        return layer


def check_schedule_range(start: datetime, end: datetime, max_days: int) -> None:
    if end <= start:
        raise ValidationError("Schedule range end must be after start")
    if end - start > timedelta(days=max_days):
        raise ValidationError(
            f"Schedule range may not exceed {max_days} days", {"max_days": max_days}
        )
