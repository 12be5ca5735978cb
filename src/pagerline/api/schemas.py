"""Wire models for the HTTP API. JSON keys are camelCase."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pagerline.domain.models import (
    AttemptStatus,
    Channel,
    OnCallSource,
    Restrictions,
    ShiftSource,
)


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class UserOut(ApiModel):
    id: str
    email: str | None = None
    display_name: str | None = None
    phone_number: str | None = None


class ParticipantOut(ApiModel):
    id: str
    layer_id: str | None = None
    user: UserOut
    position: int


class LayerOut(ApiModel):
    id: str
    rotation_id: str | None = None
    name: str | None = None
    order: int
    handoff_interval_hours: int
    starts_at: datetime
    ends_at: datetime | None = None
    restrictions: Restrictions | None = None
    is_shadow: bool
    participants: list[ParticipantOut] = Field(default_factory=list)


class OverrideOut(ApiModel):
    id: str
    rotation_id: str | None = None
    user: UserOut
    starts_at: datetime
    ends_at: datetime
    reason: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None


class RotationOut(ApiModel):
    id: str
    name: str
    timezone: str
    description: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    layers: list[LayerOut] = Field(default_factory=list)
    overrides: list[OverrideOut] = Field(default_factory=list)


class CurrentOnCallOut(ApiModel):
    rotation_id: str
    source: OnCallSource
    user: UserOut | None = None
    layer_id: str | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None


class TargetsOut(ApiModel):
    primary: UserOut | None = None
    shadow: list[UserOut] = Field(default_factory=list)


class ShiftOut(ApiModel):
    user_id: str
    display_name: str | None = None
    email: str | None = None
    starts_at: datetime
    ends_at: datetime
    source: ShiftSource
    layer_id: str | None = None


class PagingStepOut(ApiModel):
    order: int
    channels: list[Channel]
    delay_seconds: int
    repeat_count: int
    repeat_interval_seconds: int


class PagingPolicyOut(ApiModel):
    id: str
    rotation_id: str
    name: str
    description: str | None = None
    enabled: bool
    steps: list[PagingStepOut] = Field(default_factory=list)


class PagingAttemptOut(ApiModel):
    id: str | None = None
    policy_id: str
    alert_group_id: str
    channel: Channel
    status: AttemptStatus
    target_user_id: str | None = None
    step_order: int
    attempt_number: int
    error_message: str | None = None
    ack_token: str | None = None
    ack_source: str | None = None
    completed_at: datetime
