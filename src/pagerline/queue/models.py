from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any
from uuid import uuid4

from pagerline.domain.models import PagingJob

PAGING_STEP_JOB = "paging.step"


@dataclass(slots=True)
class JobMessage:
    job_id: str
    job_type: str
    payload: dict[str, Any] = field(default_factory=dict)
    idempotency_key: str | None = None
    requested_by: str | None = None
    delay_seconds: int = 0
    # Epoch seconds before which the job must not run; set when a backend
    # cannot hold the whole delay itself.
    not_before: float | None = None
    delivery_attempt: int = 1

    def to_message_body(self) -> str:
        data = asdict(self)
        return json.dumps({k: v for k, v in data.items() if v is not None}, separators=(",", ":"))

    @classmethod
    def from_message_body(cls, body: str | bytes) -> JobMessage:
        return cls.from_dict(json.loads(body))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobMessage:
        return cls(
            job_id=data["job_id"],
            job_type=data["job_type"],
            payload=data.get("payload", {}),
            idempotency_key=data.get("idempotency_key"),
            requested_by=data.get("requested_by"),
            delay_seconds=int(data.get("delay_seconds", 0)),
            not_before=data.get("not_before"),
            delivery_attempt=int(data.get("delivery_attempt", 1)),
        )

    def paging_job(self) -> PagingJob:
        return PagingJob.model_validate(self.payload)


def paging_job_message(
    job: PagingJob,
    *,
    delay_seconds: int = 0,
    requested_by: str | None = None,
) -> JobMessage:
    return JobMessage(
        job_id=str(uuid4()),
        job_type=PAGING_STEP_JOB,
        payload=job.model_dump(by_alias=True),
        idempotency_key=(
            f"{job.policy_id}:{job.alert_group_id}:{job.step_order}:{job.attempt_number}"
        ),
        requested_by=requested_by,
        delay_seconds=max(delay_seconds, 0),
    )
