"""Calendar projection of a rotation over a time range."""

from __future__ import annotations

from datetime import datetime, timedelta

from pagerline.domain.models import Layer, Rotation, ScheduledShift, ShiftSource
from pagerline.oncall.resolver import resolve_layer

# Cursor step while a restricted layer is inactive.
PROBE_STEP = timedelta(hours=1)


def _layer_shifts(layer: Layer, start: datetime, end: datetime) -> list[ScheduledShift]:
    stop = min(end, layer.ends_at) if layer.ends_at is not None else end
    cursor = max(start, layer.starts_at)
    shifts: list[ScheduledShift] = []

    while cursor < stop:
        shift = resolve_layer(layer, cursor)
        if shift is None:
            cursor += PROBE_STEP
            continue

        shifts.append(
            ScheduledShift(
                user_id=shift.user.id,
                display_name=shift.user.display_name,
                email=shift.user.email,
                starts_at=max(shift.starts_at, start),
                ends_at=min(shift.ends_at, end),
                source=ShiftSource.rotation,
                layer_id=layer.id,
            )
        )
        cursor = shift.ends_at

    return shifts


def project_schedule(rotation: Rotation, start: datetime, end: datetime) -> list[ScheduledShift]:
    """
    Walk ``[start, end)`` and list every rotation shift and override.

    Shadow layers are not part of the calendar. A resolved shift advances the
    cursor straight to its end, so the walk costs one step per shift plus one
    hourly check per inactive hour of a restricted layer. Overrides are
    reported as stored, without clipping.
    """
    shifts: list[ScheduledShift] = []
    for layer in rotation.ordered_layers():
        if layer.is_shadow:
            continue
        shifts.extend(_layer_shifts(layer, start, end))

    for override in rotation.overrides:
        if override.starts_at >= end or override.ends_at <= start:
            continue
        shifts.append(
            ScheduledShift(
                user_id=override.user.id,
                display_name=override.user.display_name,
                email=override.user.email,
                starts_at=override.starts_at,
                ends_at=override.ends_at,
                source=ShiftSource.override,
            )
        )

    return sorted(shifts, key=lambda shift: shift.starts_at)
