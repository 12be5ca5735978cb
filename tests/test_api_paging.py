import json
from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient
from pagerline.api.deps import get_job_enqueuer, session_dependency
from pagerline.api.main import create_app
from pagerline.db.models import AlertGroupModel, RotationModel
from pagerline.queue import PAGING_STEP_JOB, InMemoryJobEnqueuer

WS = {"X-Workspace-Id": "ws-1"}


class RecordingQueue(InMemoryJobEnqueuer):
    def __init__(self) -> None:
        super().__init__(clock=lambda: 0.0)
        self.messages = []

    async def enqueue(self, message):
        self.messages.append(message)
        return await super().enqueue(message)


@pytest.fixture
def queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
async def client(session, queue) -> AsyncIterator[AsyncClient]:
    session.add_all(
        [
            RotationModel(id="rot-1", workspace_id="ws-1", name="Platform", timezone="UTC"),
            AlertGroupModel(id="ag-1", workspace_id="ws-1", title="Checkout errors"),
            AlertGroupModel(id="ag-2", workspace_id="ws-2", title="Elsewhere"),
        ]
    )
    await session.commit()

    async def override_session() -> AsyncIterator:
        yield session

    app = create_app()
    app.dependency_overrides[session_dependency] = override_session
    app.dependency_overrides[get_job_enqueuer] = lambda: queue

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


async def create_policy(client: AsyncClient, **overrides) -> dict:
    body = {
        "rotationId": "rot-1",
        "name": "Checkout",
        "steps": [
            {"channels": ["SMS", "SLACK"], "repeatCount": 2, "repeatIntervalSeconds": 120},
            {"channels": ["VOICE"], "delaySeconds": 300},
        ],
    }
    body.update(overrides)
    response = await client.post("/api/v1/paging/policies", json=body, headers=WS)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_policy_orders_steps(client):
    policy = await create_policy(client)

    assert policy["enabled"] is True
    assert [step["order"] for step in policy["steps"]] == [0, 1]
    assert policy["steps"][0]["channels"] == ["SMS", "SLACK"]
    assert policy["steps"][0]["repeatCount"] == 2
    assert policy["steps"][1]["delaySeconds"] == 300


@pytest.mark.asyncio
async def test_unknown_channel_is_rejected(client):
    response = await client.post(
        "/api/v1/paging/policies",
        json={"rotationId": "rot-1", "name": "Bad", "steps": [{"channels": ["FAX"]}]},
        headers=WS,
    )

    assert response.status_code == 422
    assert response.json() == {"detail": "Invalid paging channel: FAX"}


@pytest.mark.asyncio
async def test_policy_needs_a_known_rotation(client):
    response = await client.post(
        "/api/v1/paging/policies",
        json={"rotationId": "missing", "name": "Bad", "steps": [{"channels": ["SMS"]}]},
        headers=WS,
    )

    assert response.status_code == 404
    assert response.json() == {"detail": "Rotation not found"}


@pytest.mark.asyncio
async def test_update_replaces_steps(client):
    policy = await create_policy(client)

    response = await client.put(
        f"/api/v1/paging/policies/{policy['id']}",
        json={"name": "Checkout v2", "steps": [{"channels": ["EMAIL"]}]},
        headers=WS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Checkout v2"
    assert [step["channels"] for step in body["steps"]] == [["EMAIL"]]


@pytest.mark.asyncio
async def test_delete_policy(client):
    policy = await create_policy(client)

    response = await client.delete(f"/api/v1/paging/policies/{policy['id']}", headers=WS)
    assert response.status_code == 204

    response = await client.get(f"/api/v1/paging/policies/{policy['id']}", headers=WS)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_trigger_queues_first_step(client, queue):
    policy = await create_policy(client)

    response = await client.post(
        "/api/v1/paging/trigger",
        json={"policyId": policy["id"], "alertGroupId": "ag-1"},
        headers={**WS, "X-Principal-Id": "user-7"},
    )

    assert response.status_code == 202
    body = response.json()
    assert body["queued"] is True
    assert body["stepOrder"] == 0

    [message] = queue.messages
    assert message.job_id == body["jobId"]
    assert message.job_type == PAGING_STEP_JOB
    assert message.requested_by == "user-7"
    payload = json.loads(message.to_message_body())["payload"]
    assert payload == {
        "workspaceId": "ws-1",
        "policyId": policy["id"],
        "alertGroupId": "ag-1",
        "stepOrder": 0,
        "attemptNumber": 1,
    }


@pytest.mark.asyncio
async def test_trigger_rejects_disabled_policy(client, queue):
    policy = await create_policy(client, enabled=False)

    response = await client.post(
        "/api/v1/paging/trigger",
        json={"policyId": policy["id"], "alertGroupId": "ag-1"},
        headers=WS,
    )

    assert response.status_code == 404
    assert response.json() == {"detail": "Paging policy not found or disabled"}
    assert queue.messages == []


@pytest.mark.asyncio
async def test_trigger_rejects_alert_from_other_workspace(client, queue):
    policy = await create_policy(client)

    response = await client.post(
        "/api/v1/paging/trigger",
        json={"policyId": policy["id"], "alertGroupId": "ag-2"},
        headers=WS,
    )

    assert response.status_code == 404
    assert response.json() == {"detail": "Alert group not found"}
    assert queue.messages == []


@pytest.mark.asyncio
async def test_attempt_history_for_unknown_alert(client):
    response = await client.get("/api/v1/paging/alert-groups/ag-2/attempts", headers=WS)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_attempt_history_starts_empty(client):
    response = await client.get("/api/v1/paging/alert-groups/ag-1/attempts", headers=WS)

    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_readiness_checks_database_and_queue(client):
    response = await client.get("/ready")

    assert response.json() == {"status": "ready", "database": "connected", "queue": "connected"}
