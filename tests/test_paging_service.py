import pytest
from pagerline.core.errors import NotFoundError, ValidationError
from pagerline.db.models import AlertGroupModel, PagingPolicyModel
from pagerline.db.repositories import RotationRepository
from pagerline.domain.models import Channel
from pagerline.paging.service import PagingService, build_steps
from pagerline.queue import PAGING_STEP_JOB, InMemoryJobEnqueuer

WS = "ws-1"


def test_build_steps_defaults_order_to_position():
    steps = build_steps(
        [
            {"channels": ["SLACK"]},
            {"channels": ["SMS", "VOICE"], "delay_seconds": 300, "repeat_count": 2},
        ]
    )

    assert [(s.order, s.channels) for s in steps] == [
        (0, [Channel.SLACK]),
        (1, [Channel.SMS, Channel.VOICE]),
    ]
    assert steps[1].delay_seconds == 300
    assert steps[1].repeat_interval_seconds == 0


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ([], "At least one paging step is required"),
        ([{"channels": []}], "needs at least one channel"),
        ([{"channels": ["PIGEON"]}], "Invalid paging channel: PIGEON"),
        ([{"channels": ["SMS"], "delay_seconds": -5}], "negative delay_seconds"),
        ([{"channels": ["SMS"], "order": -1}], "must not be negative"),
        ([{"channels": ["SMS"], "order": 1}, {"channels": ["SMS"], "order": 1}], "unique"),
    ],
)
def test_build_steps_rejects(raw, message):
    with pytest.raises(ValidationError, match=message):
        build_steps(raw)


@pytest.fixture
async def rotation_id(session):
    rotation = await RotationRepository(session).create_rotation(
        WS, name="Platform", timezone="UTC", description=None, created_by=None
    )
    session.add(AlertGroupModel(id="ag-1", workspace_id=WS, title="Disk full"))
    await session.commit()
    return rotation.id


@pytest.mark.asyncio
async def test_policy_crud(session, rotation_id):
    service = PagingService(session)

    policy = await service.create_policy(
        WS,
        rotation_id=rotation_id,
        name="Default",
        steps=[{"channels": ["SLACK"]}, {"channels": ["SMS"], "delay_seconds": 600}],
    )
    updated = await service.update_policy(
        WS, policy.id, {"description": "Business hours"}, [{"channels": ["EMAIL"]}]
    )

    assert updated.description == "Business hours"
    assert [s.channels for s in updated.steps] == [[Channel.EMAIL]]
    assert [p.id for p in await service.list_policies(WS)] == [policy.id]

    await service.delete_policy(WS, policy.id)
    with pytest.raises(NotFoundError, match="Paging policy not found"):
        await service.get_policy(WS, policy.id)


@pytest.mark.asyncio
async def test_create_policy_requires_rotation(session, rotation_id):
    with pytest.raises(NotFoundError, match="Rotation not found"):
        await PagingService(session).create_policy(
            WS, rotation_id="missing", name="Default", steps=[{"channels": ["SLACK"]}]
        )


@pytest.mark.asyncio
async def test_update_policy_rejects_unknown_fields(session, rotation_id):
    service = PagingService(session)
    policy = await service.create_policy(
        WS, rotation_id=rotation_id, name="Default", steps=[{"channels": ["SLACK"]}]
    )

    with pytest.raises(ValidationError, match="Unknown policy fields"):
        await service.update_policy(WS, policy.id, {"owner": "me"})


@pytest.mark.asyncio
async def test_trigger_enqueues_first_step(session, rotation_id):
    now = [1000.0]
    queue = InMemoryJobEnqueuer(clock=lambda: now[0])
    service = PagingService(session, queue)
    policy = await service.create_policy(
        WS,
        rotation_id=rotation_id,
        name="Default",
        steps=[
            {"order": 3, "channels": ["SMS"]},
            {"order": 2, "channels": ["SLACK"], "delay_seconds": 60},
        ],
    )

    result = await service.trigger(WS, policy.id, "ag-1", requested_by="user-1")

    assert result["queued"] is True
    assert result["step_order"] == 2
    assert await queue.dequeue_due() == []
    assert queue.size() == 1
    now[0] += 60
    [message] = await queue.dequeue_due()
    assert message.job_id == result["job_id"]
    assert message.job_type == PAGING_STEP_JOB
    assert message.requested_by == "user-1"
    assert message.payload == {
        "workspaceId": WS,
        "policyId": policy.id,
        "alertGroupId": "ag-1",
        "stepOrder": 2,
        "attemptNumber": 1,
    }


@pytest.mark.asyncio
async def test_trigger_rejections(session, rotation_id):
    service = PagingService(session, InMemoryJobEnqueuer())
    disabled = await service.create_policy(
        WS,
        rotation_id=rotation_id,
        name="Off",
        enabled=False,
        steps=[{"channels": ["SLACK"]}],
    )
    enabled = await service.create_policy(
        WS, rotation_id=rotation_id, name="On", steps=[{"channels": ["SLACK"]}]
    )
    session.add(
        PagingPolicyModel(
            id="empty", workspace_id=WS, rotation_id=rotation_id, name="Empty", steps=[]
        )
    )
    await session.flush()

    with pytest.raises(NotFoundError, match="not found or disabled"):
        await service.trigger(WS, disabled.id, "ag-1")
    with pytest.raises(NotFoundError, match="not found or disabled"):
        await service.trigger(WS, "missing", "ag-1")
    with pytest.raises(ValidationError, match="no steps configured"):
        await service.trigger(WS, "empty", "ag-1")
    with pytest.raises(NotFoundError, match="Alert group not found"):
        await service.trigger(WS, enabled.id, "ag-unknown")
    with pytest.raises(NotFoundError, match="not found or disabled"):
        await service.trigger("ws-other", enabled.id, "ag-1")


@pytest.mark.asyncio
async def test_list_attempts_requires_alert_group(session, rotation_id):
    service = PagingService(session)

    assert await service.list_attempts(WS, "ag-1") == []
    with pytest.raises(NotFoundError):
        await service.list_attempts(WS, "ag-unknown")
