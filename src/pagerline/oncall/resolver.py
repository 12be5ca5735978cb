"""
On-call resolution.

Who holds a layer, which override applies and who gets paged are all pure
functions of rotation configuration and an instant. Nothing here reads a
clock or a store, so every answer can be recomputed at any time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Iterable

from pagerline.domain.models import (
    CurrentOnCall,
    Layer,
    OnCallSource,
    OnCallTargets,
    Override,
    Participant,
    Rotation,
    User,
)
from pagerline.oncall.restrictions import is_layer_active

_NEVER = datetime.min.replace(tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class LayerShift:
    """The participant holding a layer and the bounds of their handoff window."""

    layer_id: str
    participant: Participant
    starts_at: datetime
    ends_at: datetime

    @property
    def user(self) -> User:
        return self.participant.user


def handoff_interval(layer: Layer) -> timedelta:
    return timedelta(hours=max(layer.handoff_interval_hours, 1))


def resolve_layer(layer: Layer, now: datetime) -> LayerShift | None:
    """Return the holder of ``layer`` at ``now``, or None when nobody holds it."""
    if now < layer.starts_at:
        return None
    if layer.ends_at is not None and now > layer.ends_at:
        return None
    participants = layer.ordered_participants()
    if not participants:
        return None
    if not is_layer_active(layer.restrictions, now):
        return None

    interval = handoff_interval(layer)
    cycle = (now - layer.starts_at) // interval
    shift_start = layer.starts_at + cycle * interval
    return LayerShift(
        layer_id=layer.id,
        participant=participants[cycle % len(participants)],
        starts_at=shift_start,
        ends_at=shift_start + interval,
    )


def _override_rank(override: Override) -> tuple[datetime, datetime, str]:
    return (override.created_at or _NEVER, override.starts_at, override.id)


def active_override(overrides: Iterable[Override], now: datetime) -> Override | None:
    """
    Pick the override covering ``now``.

    Overlaps are allowed; the most recently created one wins, then the one
    starting latest, then the highest id.
    """
    covering = [override for override in overrides if override.covers(now)]
    if not covering:
        return None
    return max(covering, key=_override_rank)


def resolve_primary(rotation: Rotation, now: datetime) -> LayerShift | None:
    for layer in rotation.ordered_layers():
        if layer.is_shadow:
            continue
        shift = resolve_layer(layer, now)
        if shift is not None:
            return shift
    return None


def resolve_targets(rotation: Rotation, now: datetime) -> OnCallTargets:
    """Primary responder plus shadow trainees for ``rotation`` at ``now``."""
    override = active_override(rotation.overrides, now)
    if override is not None:
        return OnCallTargets(primary=override.user, shadow=[])

    shift = resolve_primary(rotation, now)
    primary = shift.user if shift else None

    shadow: list[User] = []
    seen: set[str] = set()
    if primary is not None:
        seen.add(primary.id)
    for layer in rotation.ordered_layers():
        if not layer.is_shadow:
            continue
        shadow_shift = resolve_layer(layer, now)
        if shadow_shift is None or shadow_shift.user.id in seen:
            continue
        seen.add(shadow_shift.user.id)
        shadow.append(shadow_shift.user)

    return OnCallTargets(primary=primary, shadow=shadow)


def resolve_current(rotation: Rotation, now: datetime) -> CurrentOnCall:
    override = active_override(rotation.overrides, now)
    if override is not None:
        return CurrentOnCall(
            rotation_id=rotation.id,
            source=OnCallSource.override,
            user=override.user,
            starts_at=override.starts_at,
            ends_at=override.ends_at,
        )

    shift = resolve_primary(rotation, now)
    if shift is None:
        return CurrentOnCall(rotation_id=rotation.id, source=OnCallSource.none)

    return CurrentOnCall(
        rotation_id=rotation.id,
        source=OnCallSource.rotation,
        user=shift.user,
        layer_id=shift.layer_id,
        starts_at=shift.starts_at,
        ends_at=shift.ends_at,
    )
