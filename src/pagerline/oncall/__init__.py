"""
On-call resolution for layered rotations.

Pure resolvers (``resolve_layer``, ``active_override``, ``resolve_targets``,
``project_schedule``) plus ``OnCallService`` for the database-backed queries.
"""

from pagerline.oncall.resolver import (
    LayerShift,
    active_override,
    resolve_current,
    resolve_layer,
    resolve_primary,
    resolve_targets,
)
from pagerline.oncall.restrictions import is_layer_active
from pagerline.oncall.schedule import project_schedule
from pagerline.oncall.service import OnCallService, check_schedule_range

__all__ = [
    "LayerShift",
    "OnCallService",
    "active_override",
    "check_schedule_range",
    "is_layer_active",
    "project_schedule",
    "resolve_current",
    "resolve_layer",
    "resolve_primary",
    "resolve_targets",
]
