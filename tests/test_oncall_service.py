from datetime import UTC, datetime, timedelta

import pytest
from pagerline.config import Settings
from pagerline.core.errors import NotFoundError, ValidationError
from pagerline.db.models import UserModel
from pagerline.domain.models import OnCallSource, ShiftSource
from pagerline.oncall.service import OnCallService, check_schedule_range

WS = "ws-1"
START = datetime(2024, 1, 1, tzinfo=UTC)


@pytest.fixture
async def service(session):
    session.add_all(
        [
            UserModel(id="alice", workspace_id=WS, display_name="Alice", email="a@example.com"),
            UserModel(id="bob", workspace_id=WS, display_name="Bob", phone_number="+15550100"),
            UserModel(id="carol", workspace_id=WS, display_name="Carol"),
            UserModel(id="mallory", workspace_id="ws-other", display_name="Mallory"),
        ]
    )
    await session.flush()
    return OnCallService(session, Settings(schedule_max_range_days=93))


async def daily_rotation(service: OnCallService) -> tuple[str, str]:
    rotation = await service.create_rotation(WS, name="Platform", created_by="admin")
    layer = await service.add_layer(
        WS, rotation.id, starts_at=START, handoff_interval_hours=24, name="daily"
    )
    await service.add_participant(WS, rotation.id, layer.id, user_id="alice", position=0)
    await service.add_participant(WS, rotation.id, layer.id, user_id="bob", position=1)
    return rotation.id, layer.id


@pytest.mark.asyncio
async def test_current_on_call_from_rotation(service):
    rotation_id, layer_id = await daily_rotation(service)

    current = await service.current_on_call(WS, rotation_id, datetime(2024, 1, 3, 1, tzinfo=UTC))

    assert current.source is OnCallSource.rotation
    assert current.user.id == "alice"
    assert current.layer_id == layer_id
    assert current.starts_at == datetime(2024, 1, 3, tzinfo=UTC)
    assert current.ends_at == datetime(2024, 1, 4, tzinfo=UTC)


@pytest.mark.asyncio
async def test_override_takes_over(service):
    rotation_id, _ = await daily_rotation(service)
    now = datetime(2024, 1, 3, 12, tzinfo=UTC)

    override = await service.add_override(
        WS,
        rotation_id,
        user_id="carol",
        starts_at=now - timedelta(hours=2),
        ends_at=now + timedelta(hours=2),
        reason="swap",
        created_by="alice",
    )
    current = await service.current_on_call(WS, rotation_id, now)
    targets = await service.targets(WS, rotation_id, now)

    assert override.user.id == "carol"
    assert current.source is OnCallSource.override
    assert current.user.id == "carol"
    assert targets.primary.id == "carol"


@pytest.mark.asyncio
async def test_shadow_targets(service):
    rotation_id, _ = await daily_rotation(service)
    shadow = await service.add_layer(
        WS, rotation_id, starts_at=START, handoff_interval_hours=24, order=1, is_shadow=True
    )
    await service.add_participant(WS, rotation_id, shadow.id, user_id="carol")

    targets = await service.targets(WS, rotation_id, START + timedelta(hours=1))

    assert targets.primary.id == "alice"
    assert [u.id for u in targets.shadow] == ["carol"]


@pytest.mark.asyncio
async def test_schedule_lists_rotation_and_override_shifts(service):
    rotation_id, _ = await daily_rotation(service)
    await service.add_override(
        WS,
        rotation_id,
        user_id="carol",
        starts_at=datetime(2024, 1, 2, 6, tzinfo=UTC),
        ends_at=datetime(2024, 1, 2, 8, tzinfo=UTC),
    )

    shifts = await service.schedule(WS, rotation_id, START, START + timedelta(days=3))

    assert [(s.source, s.user_id) for s in shifts] == [
        (ShiftSource.rotation, "alice"),
        (ShiftSource.rotation, "bob"),
        (ShiftSource.override, "carol"),
        (ShiftSource.rotation, "alice"),
    ]


@pytest.mark.asyncio
async def test_schedule_range_is_bounded(service):
    rotation_id, _ = await daily_rotation(service)

    with pytest.raises(ValidationError):
        await service.schedule(WS, rotation_id, START, START)
    with pytest.raises(ValidationError, match="93 days"):
        await service.schedule(WS, rotation_id, START, START + timedelta(days=94))


def test_check_schedule_range_accepts_exact_limit():
    check_schedule_range(START, START + timedelta(days=7), 7)


@pytest.mark.asyncio
async def test_unknown_rotation_is_not_found(service):
    with pytest.raises(NotFoundError, match="Rotation not found"):
        await service.current_on_call(WS, "missing")
    with pytest.raises(NotFoundError):
        await service.schedule(WS, "missing", START, START + timedelta(days=1))


@pytest.mark.asyncio
async def test_rotations_are_workspace_scoped(service):
    rotation_id, _ = await daily_rotation(service)

    with pytest.raises(NotFoundError):
        await service.get_rotation("ws-other", rotation_id)
    assert [r.id for r in await service.list_rotations(WS)] == [rotation_id]
    assert await service.list_rotations("ws-other") == []


@pytest.mark.asyncio
async def test_layer_validation(service):
    rotation = await service.create_rotation(WS, name="Platform")

    with pytest.raises(ValidationError, match="at least 1 hour"):
        await service.add_layer(WS, rotation.id, starts_at=START, handoff_interval_hours=0)
    with pytest.raises(ValidationError, match="Layer end must be after start"):
        await service.add_layer(WS, rotation.id, starts_at=START, ends_at=START)
    with pytest.raises(ValidationError, match="Invalid layer"):
        await service.add_layer(
            WS, rotation.id, starts_at=START, restrictions={"days": ["NOPE"]}
        )


@pytest.mark.asyncio
async def test_update_layer_merges_changes(service):
    rotation_id, layer_id = await daily_rotation(service)

    updated = await service.update_layer(
        WS,
        rotation_id,
        layer_id,
        {
            "handoff_interval_hours": 12,
            "restrictions": {"startTime": "09:00", "endTime": "17:00"},
        },
    )

    assert updated.handoff_interval_hours == 12
    assert updated.restrictions.start_time == "09:00"
    assert updated.name == "daily"
    assert [p.user.id for p in updated.ordered_participants()] == ["alice", "bob"]

    with pytest.raises(ValidationError, match="Unknown layer fields"):
        await service.update_layer(WS, rotation_id, layer_id, {"colour": "blue"})


@pytest.mark.asyncio
async def test_delete_layer(service):
    rotation_id, layer_id = await daily_rotation(service)

    await service.delete_layer(WS, rotation_id, layer_id)

    rotation = await service.get_rotation(WS, rotation_id)
    assert rotation.layers == []
    with pytest.raises(NotFoundError, match="Layer not found"):
        await service.delete_layer(WS, rotation_id, layer_id)


@pytest.mark.asyncio
async def test_participants_must_be_known_in_workspace(service):
    rotation_id, layer_id = await daily_rotation(service)

    with pytest.raises(NotFoundError, match="User not found"):
        await service.add_participant(WS, rotation_id, layer_id, user_id="mallory")
    with pytest.raises(NotFoundError, match="Participant not found"):
        await service.remove_participant(WS, rotation_id, layer_id, "missing")


@pytest.mark.asyncio
async def test_remove_participant(service):
    rotation_id, layer_id = await daily_rotation(service)
    layer = (await service.get_rotation(WS, rotation_id)).layers[0]
    bob = next(p for p in layer.participants if p.user.id == "bob")

    await service.remove_participant(WS, rotation_id, layer_id, bob.id)

    rotation = await service.get_rotation(WS, rotation_id)
    assert [p.user.id for p in rotation.layers[0].participants] == ["alice"]


@pytest.mark.asyncio
async def test_override_validation(service):
    rotation_id, _ = await daily_rotation(service)

    with pytest.raises(ValidationError, match="Override end must be after start"):
        await service.add_override(
            WS, rotation_id, user_id="carol", starts_at=START, ends_at=START
        )
    with pytest.raises(NotFoundError, match="User not found"):
        await service.add_override(
            WS,
            rotation_id,
            user_id="nobody",
            starts_at=START,
            ends_at=START + timedelta(hours=1),
        )


@pytest.mark.asyncio
async def test_update_and_delete_override(service):
    rotation_id, _ = await daily_rotation(service)
    override = await service.add_override(
        WS,
        rotation_id,
        user_id="carol",
        starts_at=START,
        ends_at=START + timedelta(hours=4),
        reason="dentist",
    )

    updated = await service.update_override(
        WS, rotation_id, override.id, user_id="bob", ends_at=START + timedelta(hours=8)
    )

    assert updated.user.id == "bob"
    assert updated.ends_at == START + timedelta(hours=8)
    assert updated.reason == "dentist"

    with pytest.raises(ValidationError):
        await service.update_override(
            WS, rotation_id, override.id, starts_at=START + timedelta(hours=9)
        )

    await service.delete_override(WS, rotation_id, override.id)
    with pytest.raises(NotFoundError, match="Override not found"):
        await service.delete_override(WS, rotation_id, override.id)


@pytest.mark.asyncio
async def test_list_overrides_filters(service):
    rotation_id, _ = await daily_rotation(service)
    for user_id, day in (("carol", 2), ("bob", 5), ("carol", 9)):
        await service.add_override(
            WS,
            rotation_id,
            user_id=user_id,
            starts_at=datetime(2024, 1, day, tzinfo=UTC),
            ends_at=datetime(2024, 1, day, 6, tzinfo=UTC),
        )

    everything = await service.list_overrides(WS, rotation_id)
    carols = await service.list_overrides(WS, rotation_id, user_ids=["carol"])
    window = await service.list_overrides(
        WS,
        rotation_id,
        starts_from=datetime(2024, 1, 3, tzinfo=UTC),
        starts_to=datetime(2024, 1, 6, tzinfo=UTC),
    )

    assert [o.starts_at.day for o in everything] == [9, 5, 2]
    assert [o.starts_at.day for o in carols] == [9, 2]
    assert [o.user.id for o in window] == ["bob"]


@pytest.mark.asyncio
async def test_update_rotation(service):
    rotation = await service.create_rotation(WS, name="Platform")

    updated = await service.update_rotation(
        WS, rotation.id, {"name": "Platform primary", "timezone": "Europe/Berlin"}
    )

    assert updated.name == "Platform primary"
    assert updated.timezone == "Europe/Berlin"
    with pytest.raises(ValidationError, match="Unknown timezone"):
        await service.update_rotation(WS, rotation.id, {"timezone": "Nowhere/Land"})
    with pytest.raises(ValidationError, match="Unknown rotation fields"):
        await service.update_rotation(WS, rotation.id, {"owner": "x"})


@pytest.mark.asyncio
async def test_delete_rotation(service):
    rotation_id, _ = await daily_rotation(service)

    await service.delete_rotation(WS, rotation_id)

    with pytest.raises(NotFoundError):
        await service.get_rotation(WS, rotation_id)
