from __future__ import annotations

import re
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

WEEKDAYS = ("SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT")
_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def as_utc(value: datetime) -> datetime:
    """Tag naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utcnow() -> datetime:
    return datetime.now(UTC)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class Channel(StrEnum):
    """Notification channels a paging step can fire on."""

    SLACK = "SLACK"
    EMAIL = "EMAIL"
    SMS = "SMS"
    VOICE = "VOICE"


class AttemptStatus(StrEnum):
    SENT = "SENT"
    FAILED = "FAILED"


class AlertStatus(StrEnum):
    OPEN = "OPEN"
    ACK = "ACK"
    RESOLVED = "RESOLVED"
    SNOOZED = "SNOOZED"


# Alert states that halt any further paging for the group.
HALTING_ALERT_STATUSES = frozenset({AlertStatus.ACK, AlertStatus.RESOLVED, AlertStatus.SNOOZED})

SHADOW_ACK_SOURCE = "shadow"


class OnCallSource(StrEnum):
    override = "override"
    rotation = "rotation"
    none = "none"


class ShiftSource(StrEnum):
    rotation = "rotation"
    override = "override"


class User(BaseModel):
    id: str
    workspace_id: str | None = None
    email: str | None = None
    display_name: str | None = None
    phone_number: str | None = None


class Restrictions(BaseModel):
    """Day-of-week and time-of-day window that gates a layer.

    Wire shape: ``{"days": [...], "startTime": "HH:MM", "endTime": "HH:MM",
    "timezone": "Europe/Berlin"}``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    days: list[str] | None = None
    start_time: str | None = None
    end_time: str | None = None
    timezone: str | None = None

    @field_validator("days")
    @classmethod
    def _normalize_days(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        days = [day.strip().upper() for day in value]
        unknown = [day for day in days if day not in WEEKDAYS]
        if unknown:
            raise ValueError(f"unknown weekday codes: {', '.join(unknown)}")
        return days

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_time(cls, value: str | None) -> str | None:
        if value is not None and not _HHMM.match(value):
            raise ValueError(f"time must be HH:MM, got {value!r}")
        return value

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str | None) -> str | None:
        if value:
            try:
                ZoneInfo(value)
            except (ZoneInfoNotFoundError, ValueError) as exc:
                raise ValueError(f"unknown timezone {value!r}") from exc
        return value

    @property
    def has_window(self) -> bool:
        return bool(self.start_time and self.end_time)


class Participant(BaseModel):
    id: str
    layer_id: str | None = None
    user: User
    position: int = 0


class Layer(BaseModel):
    id: str
    rotation_id: str | None = None
    name: str | None = None
    order: int = 0
    handoff_interval_hours: int = Field(default=168, ge=1)
    starts_at: UtcDatetime
    ends_at: UtcDatetime | None = None
    restrictions: Restrictions | None = None
    is_shadow: bool = False
    participants: list[Participant] = Field(default_factory=list)

    def ordered_participants(self) -> list[Participant]:
        return sorted(self.participants, key=lambda p: (p.position, p.id))


class Override(BaseModel):
    id: str
    rotation_id: str | None = None
    user: User
    starts_at: UtcDatetime
    ends_at: UtcDatetime
    reason: str | None = None
    created_by: str | None = None
    created_at: UtcDatetime | None = None

    @model_validator(mode="after")
    def _check_window(self) -> Override:
        if self.ends_at <= self.starts_at:
            raise ValueError("override end must be after start")
        return self

    def covers(self, instant: datetime) -> bool:
        return self.starts_at <= instant <= self.ends_at


class Rotation(BaseModel):
    id: str
    workspace_id: str | None = None
    name: str
    timezone: str = "UTC"
    description: str | None = None
    created_by: str | None = None
    created_at: UtcDatetime | None = None
    updated_at: UtcDatetime | None = None
    layers: list[Layer] = Field(default_factory=list)
    overrides: list[Override] = Field(default_factory=list)

    def ordered_layers(self) -> list[Layer]:
        return sorted(self.layers, key=lambda layer: (layer.order, layer.id))


class CurrentOnCall(BaseModel):
    """Primary on-call answer for one rotation at one instant."""

    rotation_id: str
    source: OnCallSource
    user: User | None = None
    layer_id: str | None = None
    starts_at: UtcDatetime | None = None
    ends_at: UtcDatetime | None = None


class OnCallTargets(BaseModel):
    primary: User | None = None
    shadow: list[User] = Field(default_factory=list)


class ScheduledShift(BaseModel):
    user_id: str
    display_name: str | None = None
    email: str | None = None
    starts_at: UtcDatetime
    ends_at: UtcDatetime
    source: ShiftSource
    layer_id: str | None = None


class AlertGroup(BaseModel):
    id: str
    workspace_id: str
    title: str
    severity: str = "MEDIUM"
    environment: str = "production"
    project: str = "default"
    status: AlertStatus = AlertStatus.OPEN

    @property
    def halts_paging(self) -> bool:
        return self.status in HALTING_ALERT_STATUSES


class PagingStep(BaseModel):
    order: int = Field(ge=0)
    channels: list[Channel] = Field(min_length=1)
    delay_seconds: int = Field(default=0, ge=0)
    repeat_count: int = Field(default=0, ge=0)
    repeat_interval_seconds: int = Field(default=0, ge=0)


class PagingPolicy(BaseModel):
    id: str
    workspace_id: str
    rotation_id: str
    name: str
    description: str | None = None
    enabled: bool = True
    steps: list[PagingStep] = Field(default_factory=list)

    def ordered_steps(self) -> list[PagingStep]:
        return sorted(self.steps, key=lambda step: step.order)

    def step(self, order: int) -> PagingStep | None:
        return next((step for step in self.steps if step.order == order), None)


class PagingAttempt(BaseModel):
    """Append-only record of one channel dispatch to one target."""

    model_config = ConfigDict(frozen=True)

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
    completed_at: UtcDatetime


class PagingJob(BaseModel):
    """Queue payload for one firing of one paging step."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    workspace_id: str
    policy_id: str
    alert_group_id: str
    step_order: int = Field(ge=0)
    attempt_number: int = Field(default=1, ge=1)

    def next_attempt(self) -> PagingJob:
        return self.model_copy(update={"attempt_number": self.attempt_number + 1})

    def for_step(self, order: int) -> PagingJob:
        return self.model_copy(update={"step_order": order, "attempt_number": 1})
