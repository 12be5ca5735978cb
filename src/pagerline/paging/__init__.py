"""
Multi-step paging escalation.

``PagingOrchestrator`` executes queued step jobs, ``PagingService`` manages
policies and triggers escalations, and ``build_dispatchers`` wires the
notification channels.
"""

from pagerline.paging.channels import (
    ChannelDispatcher,
    DispatchResult,
    PageMessage,
    build_dispatchers,
    generate_ack_token,
)
from pagerline.paging.orchestrator import (
    FollowUp,
    PagingOrchestrator,
    StepResult,
    StepStatus,
)
from pagerline.paging.service import PagingService, build_steps

__all__ = [
    "ChannelDispatcher",
    "DispatchResult",
    "FollowUp",
    "PageMessage",
    "PagingOrchestrator",
    "PagingService",
    "StepResult",
    "StepStatus",
    "build_dispatchers",
    "build_steps",
    "generate_ack_token",
]
