from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from pagerline.db import models as db_models
from pagerline.domain.models import (
    AlertGroup,
    AlertStatus,
    Channel,
    Layer,
    Override,
    PagingAttempt,
    PagingPolicy,
    PagingStep,
    Participant,
    Restrictions,
    Rotation,
    User,
    utcnow,
)


def _user(model: db_models.UserModel) -> User:
    return User(
        id=model.id,
        workspace_id=model.workspace_id,
        email=model.email,
        display_name=model.display_name,
        phone_number=model.phone_number,
    )


def _participant(model: db_models.ParticipantModel) -> Participant:
    return Participant(
        id=model.id,
        layer_id=model.layer_id,
        user=_user(model.user),
        position=model.position,
    )


def _layer(model: db_models.LayerModel) -> Layer:
    return Layer(
        id=model.id,
        rotation_id=model.rotation_id,
        name=model.name,
        order=model.order,
        handoff_interval_hours=model.handoff_interval_hours,
        starts_at=model.starts_at,
        ends_at=model.ends_at,
        restrictions=(
            Restrictions.model_validate(model.restrictions) if model.restrictions else None
        ),
        is_shadow=model.is_shadow,
        participants=[_participant(p) for p in model.participants],
    )


def _override(model: db_models.OverrideModel) -> Override:
    return Override(
        id=model.id,
        rotation_id=model.rotation_id,
        user=_user(model.user),
        starts_at=model.starts_at,
        ends_at=model.ends_at,
        reason=model.reason,
        created_by=model.created_by,
        created_at=model.created_at,
    )


def _rotation(model: db_models.RotationModel) -> Rotation:
    return Rotation(
        id=model.id,
        workspace_id=model.workspace_id,
        name=model.name,
        timezone=model.timezone,
        description=model.description,
        created_by=model.created_by,
        created_at=model.created_at,
        updated_at=model.updated_at,
        layers=[_layer(layer) for layer in model.layers],
        overrides=[_override(override) for override in model.overrides],
    )


def _step(model: db_models.PagingStepModel) -> PagingStep:
    return PagingStep(
        order=model.order,
        channels=[Channel(channel) for channel in model.channels],
        delay_seconds=model.delay_seconds,
        repeat_count=model.repeat_count,
        repeat_interval_seconds=model.repeat_interval_seconds,
    )


def _policy(model: db_models.PagingPolicyModel) -> PagingPolicy:
    return PagingPolicy(
        id=model.id,
        workspace_id=model.workspace_id,
        rotation_id=model.rotation_id,
        name=model.name,
        description=model.description,
        enabled=model.enabled,
        steps=[_step(step) for step in model.steps],
    )


def _attempt(model: db_models.PagingAttemptModel) -> PagingAttempt:
    return PagingAttempt(
        id=model.id,
        policy_id=model.policy_id,
        alert_group_id=model.alert_group_id,
        channel=Channel(model.channel),
        status=model.status,
        target_user_id=model.target_user_id,
        step_order=model.step_order,
        attempt_number=model.attempt_number,
        error_message=model.error_message,
        ack_token=model.ack_token,
        ack_source=model.ack_source,
        completed_at=model.completed_at,
    )


def _restrictions_json(restrictions: Restrictions | None) -> dict[str, Any] | None:
    if restrictions is None:
        return None
    return restrictions.model_dump(by_alias=True, exclude_none=True)


@dataclass(slots=True)
class RotationRepository:
    """Persistence for rotations, layers, participants and overrides."""

    session: AsyncSession

    async def get_user(self, workspace_id: str, user_id: str) -> db_models.UserModel | None:
        stmt = select(db_models.UserModel).where(
            db_models.UserModel.id == user_id,
            db_models.UserModel.workspace_id == workspace_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_users(self, user_ids: Iterable[str]) -> dict[str, User]:
        ids = list(user_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(db_models.UserModel).where(db_models.UserModel.id.in_(ids))
        )
        return {model.id: _user(model) for model in result.scalars().all()}

    async def _rotation_model(
        self, workspace_id: str, rotation_id: str
    ) -> db_models.RotationModel | None:
        stmt = (
            select(db_models.RotationModel)
            .where(
                db_models.RotationModel.id == rotation_id,
                db_models.RotationModel.workspace_id == workspace_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_rotation(self, workspace_id: str, rotation_id: str) -> Rotation | None:
        model = await self._rotation_model(workspace_id, rotation_id)
        return _rotation(model) if model else None

    async def list_rotations(self, workspace_id: str) -> list[Rotation]:
        stmt = (
            select(db_models.RotationModel)
            .where(db_models.RotationModel.workspace_id == workspace_id)
            .order_by(db_models.RotationModel.updated_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [_rotation(model) for model in result.scalars().all()]

    async def create_rotation(
        self,
        workspace_id: str,
        *,
        name: str,
        timezone: str,
        description: str | None,
        created_by: str | None,
    ) -> Rotation:
        model = db_models.RotationModel(
            workspace_id=workspace_id,
            name=name,
            timezone=timezone,
            description=description,
            created_by=created_by,
            layers=[],
            overrides=[],
        )
        self.session.add(model)
        await self.session.flush()
        return _rotation(model)

    async def update_rotation(
        self, workspace_id: str, rotation_id: str, changes: dict[str, Any]
    ) -> Rotation | None:
        model = await self._rotation_model(workspace_id, rotation_id)
        if model is None:
            return None
        for field_name, value in changes.items():
            setattr(model, field_name, value)
        model.updated_at = utcnow()
        await self.session.flush()
        return _rotation(model)

    async def delete_rotation(self, workspace_id: str, rotation_id: str) -> bool:
        model = await self._rotation_model(workspace_id, rotation_id)
        if model is None:
            return False
        await self.session.delete(model)
        await self.session.flush()
        return True

    async def _layer_model(self, rotation_id: str, layer_id: str) -> db_models.LayerModel | None:
        stmt = (
            select(db_models.LayerModel)
            .where(
                db_models.LayerModel.id == layer_id,
                db_models.LayerModel.rotation_id == rotation_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_layer(self, rotation_id: str, layer_id: str) -> Layer | None:
        model = await self._layer_model(rotation_id, layer_id)
        return _layer(model) if model else None

    async def add_layer(self, rotation_id: str, layer: Layer) -> Layer:
        model = db_models.LayerModel(
            id=layer.id,
            rotation_id=rotation_id,
            name=layer.name,
            order=layer.order,
            handoff_interval_hours=layer.handoff_interval_hours,
            starts_at=layer.starts_at,
            ends_at=layer.ends_at,
            restrictions=_restrictions_json(layer.restrictions),
            is_shadow=layer.is_shadow,
            participants=[],
        )
        self.session.add(model)
        await self.session.flush()
        return _layer(model)

    async def update_layer(self, rotation_id: str, layer_id: str, layer: Layer) -> Layer | None:
        model = await self._layer_model(rotation_id, layer_id)
        if model is None:
            return None
        model.name = layer.name
        model.order = layer.order
        model.handoff_interval_hours = layer.handoff_interval_hours
        model.starts_at = layer.starts_at
        model.ends_at = layer.ends_at
        model.restrictions = _restrictions_json(layer.restrictions)
        model.is_shadow = layer.is_shadow
        await self.session.flush()
        return _layer(model)

    async def delete_layer(self, rotation_id: str, layer_id: str) -> bool:
        model = await self._layer_model(rotation_id, layer_id)
        if model is None:
            return False
        await self.session.delete(model)
        await self.session.flush()
        return True

    async def add_participant(
        self, layer_id: str, user: db_models.UserModel, position: int
    ) -> Participant:
        model = db_models.ParticipantModel(layer_id=layer_id, user_id=user.id, position=position)
        model.user = user
        self.session.add(model)
        await self.session.flush()
        return _participant(model)

    async def delete_participant(self, layer_id: str, participant_id: str) -> bool:
        result = await self.session.execute(
            delete(db_models.ParticipantModel).where(
                db_models.ParticipantModel.id == participant_id,
                db_models.ParticipantModel.layer_id == layer_id,
            )
        )
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def list_overrides(
        self,
        rotation_id: str,
        *,
        starts_from: datetime | None = None,
        starts_to: datetime | None = None,
        user_ids: Sequence[str] | None = None,
    ) -> list[Override]:
        stmt = select(db_models.OverrideModel).where(
            db_models.OverrideModel.rotation_id == rotation_id
        )
        if starts_from is not None:
            stmt = stmt.where(db_models.OverrideModel.starts_at >= starts_from)
        if starts_to is not None:
            stmt = stmt.where(db_models.OverrideModel.starts_at <= starts_to)
        if user_ids:
            stmt = stmt.where(db_models.OverrideModel.user_id.in_(list(user_ids)))
        stmt = stmt.order_by(db_models.OverrideModel.starts_at.desc())
        result = await self.session.execute(stmt)
        return [_override(model) for model in result.scalars().all()]

    async def _override_model(
        self, rotation_id: str, override_id: str
    ) -> db_models.OverrideModel | None:
        stmt = select(db_models.OverrideModel).where(
            db_models.OverrideModel.id == override_id,
            db_models.OverrideModel.rotation_id == rotation_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_override(self, rotation_id: str, override_id: str) -> Override | None:
        model = await self._override_model(rotation_id, override_id)
        return _override(model) if model else None

    async def add_override(
        self,
        rotation_id: str,
        user: db_models.UserModel,
        *,
        starts_at: datetime,
        ends_at: datetime,
        reason: str | None,
        created_by: str | None,
    ) -> Override:
        model = db_models.OverrideModel(
            rotation_id=rotation_id,
            user_id=user.id,
            starts_at=starts_at,
            ends_at=ends_at,
            reason=reason,
            created_by=created_by,
        )
        model.user = user
        self.session.add(model)
        await self.session.flush()
        return _override(model)

    async def update_override(
        self,
        rotation_id: str,
        override_id: str,
        *,
        user: db_models.UserModel | None,
        starts_at: datetime,
        ends_at: datetime,
        reason: str | None,
    ) -> Override | None:
        model = await self._override_model(rotation_id, override_id)
        if model is None:
            return None
        if user is not None:
            model.user_id = user.id
            model.user = user
        model.starts_at = starts_at
        model.ends_at = ends_at
        model.reason = reason
        await self.session.flush()
        return _override(model)

    async def delete_override(self, rotation_id: str, override_id: str) -> bool:
        result = await self.session.execute(
            delete(db_models.OverrideModel).where(
                db_models.OverrideModel.id == override_id,
                db_models.OverrideModel.rotation_id == rotation_id,
            )
        )
        return bool(result.rowcount)  # type: ignore[attr-defined]


@dataclass(slots=True)
class PagingRepository:
    """Persistence for paging policies, alert group status and paging attempts.

    Attempts are insert-only.
    """

    session: AsyncSession

    async def _policy_model(
        self, workspace_id: str, policy_id: str
    ) -> db_models.PagingPolicyModel | None:
        stmt = (
            select(db_models.PagingPolicyModel)
            .where(
                db_models.PagingPolicyModel.id == policy_id,
                db_models.PagingPolicyModel.workspace_id == workspace_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_policy(self, workspace_id: str, policy_id: str) -> PagingPolicy | None:
        model = await self._policy_model(workspace_id, policy_id)
        return _policy(model) if model else None

    async def list_policies(self, workspace_id: str) -> list[PagingPolicy]:
        stmt = (
            select(db_models.PagingPolicyModel)
            .where(db_models.PagingPolicyModel.workspace_id == workspace_id)
            .order_by(db_models.PagingPolicyModel.updated_at.desc())
        )
        result = await self.session.execute(stmt)
        return [_policy(model) for model in result.scalars().all()]

    async def create_policy(self, policy: PagingPolicy) -> PagingPolicy:
        model = db_models.PagingPolicyModel(
            id=policy.id,
            workspace_id=policy.workspace_id,
            rotation_id=policy.rotation_id,
            name=policy.name,
            description=policy.description,
            enabled=policy.enabled,
            steps=[self._step_model(step) for step in policy.ordered_steps()],
        )
        self.session.add(model)
        await self.session.flush()
        return _policy(model)

    async def update_policy(
        self,
        workspace_id: str,
        policy_id: str,
        changes: dict[str, Any],
        steps: Sequence[PagingStep] | None = None,
    ) -> PagingPolicy | None:
        model = await self._policy_model(workspace_id, policy_id)
        if model is None:
            return None
        for field_name, value in changes.items():
            setattr(model, field_name, value)
        if steps is not None:
            # Old rows must be gone before the new ones hit uq_paging_step_order.
            model.steps.clear()
            await self.session.flush()
            model.steps.extend(self._step_model(step) for step in steps)
        model.updated_at = utcnow()
        await self.session.flush()
        return _policy(model)

    async def delete_policy(self, workspace_id: str, policy_id: str) -> bool:
        model = await self._policy_model(workspace_id, policy_id)
        if model is None:
            return False
        await self.session.delete(model)
        await self.session.flush()
        return True

    async def get_alert_group(self, workspace_id: str, alert_group_id: str) -> AlertGroup | None:
        stmt = (
            select(db_models.AlertGroupModel)
            .where(
                db_models.AlertGroupModel.id == alert_group_id,
                db_models.AlertGroupModel.workspace_id == workspace_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return AlertGroup(
            id=model.id,
            workspace_id=model.workspace_id,
            title=model.title,
            severity=model.severity,
            environment=model.environment,
            project=model.project,
            status=AlertStatus(model.status),
        )

    async def record_attempts(self, attempts: Sequence[PagingAttempt]) -> None:
        """Stage attempt rows; the caller's commit makes them visible together."""
        for attempt in attempts:
            self.session.add(
                db_models.PagingAttemptModel(
                    policy_id=attempt.policy_id,
                    alert_group_id=attempt.alert_group_id,
                    channel=attempt.channel.value,
                    status=attempt.status.value,
                    target_user_id=attempt.target_user_id,
                    step_order=attempt.step_order,
                    attempt_number=attempt.attempt_number,
                    error_message=attempt.error_message,
                    ack_token=attempt.ack_token,
                    ack_source=attempt.ack_source,
                    completed_at=attempt.completed_at,
                )
            )
        await self.session.flush()

    async def list_attempts(self, alert_group_id: str) -> list[PagingAttempt]:
        stmt = (
            select(db_models.PagingAttemptModel)
            .where(db_models.PagingAttemptModel.alert_group_id == alert_group_id)
            .order_by(
                db_models.PagingAttemptModel.step_order,
                db_models.PagingAttemptModel.attempt_number,
                db_models.PagingAttemptModel.completed_at,
            )
        )
        result = await self.session.execute(stmt)
        return [_attempt(model) for model in result.scalars().all()]

    @staticmethod
    def _step_model(step: PagingStep) -> db_models.PagingStepModel:
        return db_models.PagingStepModel(
            order=step.order,
            channels=[channel.value for channel in step.channels],
            delay_seconds=step.delay_seconds,
            repeat_count=step.repeat_count,
            repeat_interval_seconds=step.repeat_interval_seconds,
        )
