"""Tests for the paging escalation state machine."""

import re
from datetime import UTC, datetime

import pytest
from pagerline.config import Settings
from pagerline.domain.models import (
    AlertGroup,
    AlertStatus,
    AttemptStatus,
    Channel,
    Layer,
    Participant,
    PagingJob,
    PagingPolicy,
    PagingStep,
    Rotation,
    User,
)
from pagerline.paging.channels import DispatchResult, PageMessage
from pagerline.paging.orchestrator import NO_TARGET_MESSAGE, PagingOrchestrator, StepStatus
from pagerline.queue import InMemoryJobEnqueuer

NOW = datetime(2024, 1, 3, 1, tzinfo=UTC)
WS = "ws-1"

PRIMARY = User(id="p1", email="p1@example.com", phone_number="+15550001")
TRAINEE = User(id="t1", email="t1@example.com", phone_number="+15550002")


class FakeStore:
    def __init__(self, policy: PagingPolicy | None, alert: AlertGroup | None) -> None:
        self.policy = policy
        self.alert = alert
        self.recorded = []

    async def get_policy(self, workspace_id, policy_id):
        return self.policy if self.policy and self.policy.id == policy_id else None

    async def get_alert_group(self, workspace_id, alert_group_id):
        return self.alert if self.alert and self.alert.id == alert_group_id else None

    async def record_attempts(self, attempts):
        self.recorded.extend(attempts)


class FakeRotations:
    def __init__(self, rotation: Rotation | None) -> None:
        self.rotation = rotation

    async def get_rotation(self, workspace_id, rotation_id):
        return self.rotation


class RecordingDispatcher:
    def __init__(self, channel: Channel, *, error: Exception | None = None, fail: str = ""):
        self.channel = channel
        self.error = error
        self.fail = fail
        self.calls: list[tuple[str, PageMessage]] = []

    async def send(self, target, message):
        self.calls.append((target.id, message))
        if self.error:
            raise self.error
        if self.fail:
            return DispatchResult.failed(self.fail)
        return DispatchResult.sent(None if message.shadow else message.ack_token)


def rotation(*, shadow: bool = False) -> Rotation:
    layers = [
        Layer(
            id="primary",
            handoff_interval_hours=24,
            starts_at=datetime(2024, 1, 1, tzinfo=UTC),
            participants=[Participant(id="pp", user=PRIMARY)],
        )
    ]
    if shadow:
        layers.append(
            Layer(
                id="shadow",
                order=1,
                handoff_interval_hours=24,
                starts_at=datetime(2024, 1, 1, tzinfo=UTC),
                is_shadow=True,
                participants=[Participant(id="tp", user=TRAINEE)],
            )
        )
    return Rotation(id="rot-1", name="Primary", layers=layers)


def policy(*steps: PagingStep, enabled: bool = True) -> PagingPolicy:
    return PagingPolicy(
        id="pol-1",
        workspace_id=WS,
        rotation_id="rot-1",
        name="Default",
        enabled=enabled,
        steps=list(steps),
    )


def alert(status: AlertStatus = AlertStatus.OPEN) -> AlertGroup:
    return AlertGroup(
        id="ag-1",
        workspace_id=WS,
        title="API latency",
        severity="HIGH",
        environment="prod",
        project="api",
        status=status,
    )


def job(step_order: int = 0, attempt_number: int = 1) -> PagingJob:
    return PagingJob(
        workspace_id=WS,
        policy_id="pol-1",
        alert_group_id="ag-1",
        step_order=step_order,
        attempt_number=attempt_number,
    )


def dispatchers(*extra: RecordingDispatcher) -> dict[Channel, RecordingDispatcher]:
    table = {channel: RecordingDispatcher(channel) for channel in Channel}
    table.update({d.channel: d for d in extra})
    return table


def build(store, rotations, table, queue=None, **settings):
    return PagingOrchestrator(
        store=store,
        rotations=rotations,
        dispatchers=table,
        queue=queue or InMemoryJobEnqueuer(clock=lambda: 0.0),
        settings=Settings(frontend_url="https://app.example.com", **settings),
        clock=lambda: NOW,
    )


async def noop_commit():
    return None


@pytest.mark.asyncio
async def test_acknowledged_alert_halts_step():
    store = FakeStore(policy(PagingStep(order=0, channels=[Channel.SMS])), alert(AlertStatus.ACK))
    table = dispatchers()
    queue = InMemoryJobEnqueuer(clock=lambda: 0.0)

    result = await build(store, FakeRotations(rotation()), table, queue).execute(
        job(), noop_commit
    )

    assert result.status is StepStatus.skipped
    assert result.reason == "alert_inactive"
    assert store.recorded == []
    assert table[Channel.SMS].calls == []
    assert queue.size() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("store", "reason"),
    [
        (FakeStore(None, alert()), "policy_missing"),
        (
            FakeStore(policy(PagingStep(order=0, channels=[Channel.SMS]), enabled=False), alert()),
            "policy_disabled",
        ),
        (FakeStore(policy(PagingStep(order=1, channels=[Channel.SMS])), alert()), "step_missing"),
        (FakeStore(policy(PagingStep(order=0, channels=[Channel.SMS])), None), "alert_missing"),
    ],
)
async def test_missing_state_skips_without_attempts(store, reason):
    result = await build(store, FakeRotations(rotation()), dispatchers()).run(job())

    assert result.status is StepStatus.skipped
    assert result.reason == reason
    assert result.follow_ups == []
    assert store.recorded == []


@pytest.mark.asyncio
async def test_repeats_never_fork_the_step_chain():
    store = FakeStore(
        policy(
            PagingStep(order=0, channels=[Channel.SLACK], repeat_count=2),
            PagingStep(order=1, channels=[Channel.EMAIL], delay_seconds=600),
        ),
        alert(),
    )
    now = [0.0]
    queue = InMemoryJobEnqueuer(clock=lambda: now[0])
    orchestrator = build(store, FakeRotations(rotation()), dispatchers(), queue)

    executed = []
    await orchestrator.execute(job(), noop_commit)
    executed.append((0, 1))
    while queue.size():
        now[0] += 3600
        for message in await queue.dequeue_due(limit=100):
            paging_job = message.paging_job()
            executed.append((paging_job.step_order, paging_job.attempt_number))
            await orchestrator.execute(paging_job, noop_commit)

    assert sorted(executed) == [(0, 1), (0, 2), (0, 3), (1, 1)]


@pytest.mark.asyncio
async def test_follow_up_delays():
    store = FakeStore(
        policy(
            PagingStep(order=0, channels=[Channel.SLACK], repeat_count=1),
            PagingStep(order=1, channels=[Channel.SLACK], delay_seconds=120),
            PagingStep(
                order=2, channels=[Channel.SLACK], repeat_count=1, repeat_interval_seconds=45
            ),
        ),
        alert(),
    )
    orchestrator = build(store, FakeRotations(rotation()), dispatchers())

    first = await orchestrator.run(job(0, 1))
    repeat = await orchestrator.run(job(0, 2))
    last = await orchestrator.run(job(2, 1))

    planned = [
        (f.kind, f.job.step_order, f.job.attempt_number, f.delay_seconds)
        for f in first.follow_ups
    ]
    assert planned == [("repeat", 0, 2, 300), ("next_step", 1, 1, 120)]
    assert repeat.follow_ups == []
    assert [(f.kind, f.delay_seconds) for f in last.follow_ups] == [("repeat", 45)]


@pytest.mark.asyncio
async def test_follow_ups_enqueued_only_after_commit():
    store = FakeStore(
        policy(
            PagingStep(order=0, channels=[Channel.SLACK], repeat_count=1),
            PagingStep(order=1, channels=[Channel.SLACK]),
        ),
        alert(),
    )
    queue = InMemoryJobEnqueuer(clock=lambda: 0.0)

    async def failing_commit():
        raise RuntimeError("database gone")

    with pytest.raises(RuntimeError):
        await build(store, FakeRotations(rotation()), dispatchers(), queue).execute(
            job(), failing_commit
        )

    assert queue.size() == 0


@pytest.mark.asyncio
async def test_no_target_fails_every_channel():
    store = FakeStore(policy(PagingStep(order=0, channels=[Channel.SMS, Channel.EMAIL])), alert())
    table = dispatchers()

    result = await build(store, FakeRotations(None), table).run(job())

    assert result.status is StepStatus.dispatched
    assert [(a.channel, a.status, a.error_message, a.target_user_id) for a in store.recorded] == [
        (Channel.SMS, AttemptStatus.FAILED, NO_TARGET_MESSAGE, None),
        (Channel.EMAIL, AttemptStatus.FAILED, NO_TARGET_MESSAGE, None),
    ]
    assert table[Channel.SMS].calls == []


@pytest.mark.asyncio
async def test_channel_failure_does_not_block_siblings():
    store = FakeStore(
        policy(PagingStep(order=0, channels=[Channel.SMS, Channel.SLACK, Channel.VOICE])),
        alert(),
    )
    table = dispatchers(
        RecordingDispatcher(Channel.SMS, error=RuntimeError("twilio down")),
        RecordingDispatcher(Channel.VOICE, fail="Target user phone missing"),
    )

    await build(store, FakeRotations(rotation()), table).run(job())

    assert [(a.channel, a.status, a.error_message) for a in store.recorded] == [
        (Channel.SMS, AttemptStatus.FAILED, "twilio down"),
        (Channel.SLACK, AttemptStatus.SENT, None),
        (Channel.VOICE, AttemptStatus.FAILED, "Target user phone missing"),
    ]
    assert all(a.ack_token is None for a in store.recorded)


@pytest.mark.asyncio
async def test_unconfigured_channel_is_failed_attempt():
    store = FakeStore(policy(PagingStep(order=0, channels=[Channel.EMAIL])), alert())

    await build(store, FakeRotations(rotation()), {}).run(job())

    assert store.recorded[0].status is AttemptStatus.FAILED
    assert store.recorded[0].error_message == "Channel not configured"


@pytest.mark.asyncio
async def test_ack_tokens_only_on_primary_sms_and_voice():
    store = FakeStore(
        policy(PagingStep(order=0, channels=[Channel.SLACK, Channel.SMS, Channel.VOICE])),
        alert(),
    )
    table = dispatchers()

    await build(store, FakeRotations(rotation(shadow=True)), table).run(job())

    primary = [a for a in store.recorded if a.ack_source is None]
    shadow = [a for a in store.recorded if a.ack_source == "shadow"]
    assert primary[0].ack_token is None
    for attempt in primary[1:]:
        assert re.fullmatch(r"[0-9A-F]{6}", attempt.ack_token)
    assert all(a.ack_token is None for a in shadow)
    sms_message = next(m for uid, m in table[Channel.SMS].calls if uid == "p1")
    assert sms_message.ack_token == primary[1].ack_token


@pytest.mark.asyncio
async def test_shadow_attempts_follow_primary():
    store = FakeStore(policy(PagingStep(order=0, channels=[Channel.EMAIL, Channel.SMS])), alert())
    table = dispatchers()

    result = await build(store, FakeRotations(rotation(shadow=True)), table).run(job())

    assert [(a.target_user_id, a.channel, a.ack_source) for a in result.attempts] == [
        ("p1", Channel.EMAIL, None),
        ("p1", Channel.SMS, None),
        ("t1", Channel.EMAIL, "shadow"),
        ("t1", Channel.SMS, "shadow"),
    ]
    shadow_messages = [m for uid, m in table[Channel.EMAIL].calls if uid == "t1"]
    assert shadow_messages[0].shadow is True
    assert shadow_messages[0].alert_url == "https://app.example.com/dashboard/alerts/ag-1"


@pytest.mark.asyncio
async def test_shadow_failure_keeps_step_progression():
    store = FakeStore(
        policy(
            PagingStep(order=0, channels=[Channel.SMS]),
            PagingStep(order=1, channels=[Channel.SMS]),
        ),
        alert(),
    )

    class PrimaryOnly(RecordingDispatcher):
        async def send(self, target, message):
            if message.shadow:
                raise RuntimeError("shadow transport down")
            return await super().send(target, message)

    table = dispatchers(PrimaryOnly(Channel.SMS))

    result = await build(store, FakeRotations(rotation(shadow=True)), table).run(job())

    statuses = {(a.target_user_id, a.status) for a in result.attempts}
    assert statuses == {("p1", AttemptStatus.SENT), ("t1", AttemptStatus.FAILED)}
    assert [f.kind for f in result.follow_ups] == ["next_step"]


@pytest.mark.asyncio
async def test_targets_resolved_at_execution_time():
    store = FakeStore(policy(PagingStep(order=0, channels=[Channel.EMAIL])), alert())
    rotations = FakeRotations(rotation())
    orchestrator = build(store, rotations, dispatchers())

    rotations.rotation = rotations.rotation.model_copy(
        update={
            "layers": [
                rotations.rotation.layers[0].model_copy(
                    update={"participants": [Participant(id="pt", user=TRAINEE)]}
                )
            ]
        }
    )
    await orchestrator.run(job())

    assert store.recorded[0].target_user_id == "t1"
    assert store.recorded[0].completed_at == NOW
