from uuid import uuid4

import httpx
import pytest

from brokerdesk.db.redis_client import get_redis
from brokerdesk.db.session import get_db
from brokerdesk.main import app
from brokerdesk.services.keyword_services import MAX_DAILY_ADDS


@pytest.fixture
async def client(db, mock_redis):
    """HTTP client against the app, wired to the test session and the mock Redis."""
    async def override_get_db():
        yield db

    async def override_get_redis():
        yield mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "BrokerDesk API is running"}


# ---------------- Leads ----------------

async def test_claim_then_conflict(client, agent, other_agent, make_lead):
    lead = await make_lead()
    lead_id, agent_id, other_id = str(lead.id), str(agent.id), str(other_agent.id)

    first = await client.post(f"/api/v1/leads/{lead_id}/claim", json={"agent_id": agent_id})
    assert first.status_code == 200
    assert first.json()["status"] == "claimed"
    assert first.json()["claimed_by"] == agent_id

    second = await client.post(f"/api/v1/leads/{lead_id}/claim", json={"agent_id": other_id})
    assert second.status_code == 409
    detail = second.json()["detail"]
    assert detail["current_status"] == "claimed"
    assert detail["entity_type"] == "lead"


async def test_claim_without_agent_is_422(client, make_lead):
    lead = await make_lead()
    response = await client.post(f"/api/v1/leads/{lead.id}/claim", json={})
    assert response.status_code == 422


async def test_missing_lead_is_404(client):
    response = await client.get(f"/api/v1/leads/{uuid4()}")
    assert response.status_code == 404


async def test_resolve_booked(client, agent, make_lead, make_load):
    lead, load = await make_lead(), await make_load()

    missing_load = await client.post(
        f"/api/v1/leads/{lead.id}/resolve", json={"agent_id": str(agent.id), "outcome": "booked"}
    )
    assert missing_load.status_code == 422

    response = await client.post(
        f"/api/v1/leads/{lead.id}/resolve",
        json={"agent_id": str(agent.id), "outcome": "booked", "load_id": str(load.id)},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["lead"]["status"] == "booked"
    assert body["load_status"] == "booked"


async def test_unknown_outcome_fails_request_validation(client, agent, make_lead):
    lead = await make_lead()
    response = await client.post(
        f"/api/v1/leads/{lead.id}/resolve", json={"agent_id": str(agent.id), "outcome": "ghosted"}
    )
    assert response.status_code == 422


async def test_queue_and_priority(client, agency_id, agent, make_lead):
    lead = await make_lead(carrier_mc="MC123", caller_company="Acme Freight")

    queue = await client.get("/api/v1/leads/queue", params={"agency_id": str(agency_id), "agent_id": str(agent.id)})
    assert queue.status_code == 200
    assert [item["lead"]["id"] for item in queue.json()] == [str(lead.id)]

    priority = await client.get(f"/api/v1/leads/{lead.id}/priority")
    assert priority.status_code == 200
    assert priority.json()["priority"]["score"] == 45
    assert priority.json()["time_in_queue"] == "< 1h in queue"


async def test_transcript_endpoint(client, agent, make_lead):
    lead = await make_lead()
    await client.post("/api/v1/keywords", json={"agent_id": str(agent.id), "keyword": "reefer"})

    response = await client.post(
        f"/api/v1/leads/{lead.id}/transcript", json={"text": "Got a reefer?", "agent_id": str(agent.id)}
    )
    assert response.status_code == 200
    assert response.json()["intent_score"] == 85


# ---------------- Loads ----------------

async def test_book_load_with_attribution(client, agent, make_lead, make_load):
    load = await make_load()
    lead = await make_lead(load_id=load.id)

    response = await client.post(f"/api/v1/loads/{load.id}/book", json={"agent_id": str(agent.id)})
    assert response.status_code == 200
    body = response.json()
    assert body["load"]["status"] == "booked"
    assert body["attribution"] == {"matched": True, "match_type": "load_reference", "lead_id": str(lead.id)}


async def test_book_without_acting_agent_is_422(client, make_load):
    load = await make_load()
    response = await client.post(f"/api/v1/loads/{load.id}/book", json={"booked_source": "ai"})
    assert response.status_code == 422

    stored = await client.get(f"/api/v1/loads/{load.id}")
    assert stored.json()["status"] == "open"


async def test_book_load_claimed_by_someone_else_is_409(client, agent, other_agent, make_load):
    load = await make_load()
    await client.post(f"/api/v1/loads/{load.id}/claim", json={"agent_id": str(other_agent.id)})

    response = await client.post(f"/api/v1/loads/{load.id}/book", json={"agent_id": str(agent.id)})
    assert response.status_code == 409
    assert response.json()["detail"]["current_status"] == "claimed"


async def test_close_load_requires_reason(client, make_load):
    load = await make_load()
    response = await client.post(f"/api/v1/loads/{load.id}/close", json={})
    assert response.status_code == 422


async def test_close_covered_endpoint(client, agent, make_lead, make_load):
    load = await make_load()
    lead = await make_lead(load_id=load.id)

    response = await client.post(f"/api/v1/loads/{load.id}/close-covered", json={"agent_id": str(agent.id)})
    assert response.status_code == 200
    assert response.json()["closed_lead_ids"] == [str(lead.id)]


# ---------------- Keywords ----------------

async def test_keyword_caps_map_to_429(client, agent):
    agent_id = str(agent.id)
    for i in range(MAX_DAILY_ADDS):
        created = await client.post("/api/v1/keywords", json={"agent_id": agent_id, "keyword": f"lane {i}"})
        assert created.status_code == 201

    blocked = await client.post("/api/v1/keywords", json={"agent_id": agent_id, "keyword": "one more"})
    assert blocked.status_code == 429
    assert blocked.json()["detail"]["cap"] == "daily"


async def test_global_keyword_by_agent_is_403(client, agent):
    response = await client.post(
        "/api/v1/keywords", json={"agent_id": str(agent.id), "keyword": "dallas", "scope": "global"}
    )
    assert response.status_code == 403


async def test_score_endpoint(client, agency_id, admin):
    await client.post("/api/v1/keywords", json={"agent_id": str(admin.id), "keyword": "dallas", "scope": "global"})

    response = await client.post(
        "/api/v1/keywords/score", json={"agency_id": str(agency_id), "text": "out of Dallas tomorrow"}
    )
    assert response.status_code == 200
    assert response.json()["intent_score_floor"] == 85
    assert [m["keyword"] for m in response.json()["matches"]] == ["dallas"]


async def test_quota_endpoint(client, agent):
    response = await client.get("/api/v1/keywords/quota", params={"agent_id": str(agent.id)})
    assert response.status_code == 200
    assert response.json()["personal_limit"] == 25


# ---------------- Metrics / agents ----------------

async def test_metrics_endpoint(client, agency_id, make_call):
    await make_call(duration_seconds=30)

    response = await client.get("/api/v1/metrics", params={"agency_id": str(agency_id), "range": "7d", "timezone": "UTC"})
    assert response.status_code == 200
    body = response.json()
    assert body["kpis"]["total_calls"] == 1
    assert body["window"]["label"] == "Last 7 Days"
    assert body["cached"] is False


async def test_metrics_rejects_unknown_range(client, agency_id):
    response = await client.get("/api/v1/metrics", params={"agency_id": str(agency_id), "range": "forever"})
    assert response.status_code == 422


async def test_daily_reset_endpoint(client, agent):
    response = await client.post("/api/v1/agents/daily-reset")
    assert response.status_code == 200
    assert response.json()["reset_agent_ids"] == [str(agent.id)]

    state = await client.get(f"/api/v1/agents/{agent.id}/daily-state")
    assert state.status_code == 200
    assert state.json()["agent_id"] == str(agent.id)
