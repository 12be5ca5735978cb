from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from pagerline.config import Settings, get_settings
from pagerline.db.session import get_session
from pagerline.queue import JobQueue, create_job_queue


async def session_dependency() -> AsyncIterator[AsyncSession]:
    async for session in get_session():
        yield session


def get_job_enqueuer(settings: Settings = Depends(get_settings)) -> JobQueue:  # noqa: B008
    return create_job_queue(settings)


def workspace_dependency(x_workspace_id: str = Header(min_length=1)) -> str:
    """Workspace scoping comes from the gateway in ``X-Workspace-Id``."""
    return x_workspace_id


def principal_dependency(x_principal_id: str | None = Header(default=None)) -> str | None:
    return x_principal_id
