from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from brokerdesk.crud import agent_daily_state as crud_daily_state
from brokerdesk.services.agent_services import AgentServices, compute_aei
from brokerdesk.services.date_windows import local_date, resolve_timezone
from brokerdesk.services.lead_services import LeadServices


@pytest.mark.parametrize("minutes, high_intent, calls, callback, expected", [
    (0, 0, 0, 0, 20),        # no data: only the callback component (full speed)
    (60, 10, 10, 0, 100),
    (30, 5, 10, 150, 50),    # 20 + 20 + 10
    (120, 0, 4, 600, 40),    # minutes capped at 40, slow callbacks score 0
])
def test_compute_aei(minutes, high_intent, calls, callback, expected):
    assert compute_aei(minutes, high_intent, calls, callback) == expected


async def test_refresh_counts_the_agents_local_day(db, agent, make_call, make_lead):
    now = datetime.utcnow()
    await make_call(agent_id=agent.id, duration_seconds=120, is_ai=True, started_at=now)
    await make_call(agent_id=agent.id, duration_seconds=5, is_ai=True, started_at=now)
    await make_call(agent_id=agent.id, duration_seconds=600, is_ai=True, started_at=now - timedelta(days=3))
    lead = await make_lead(intent_score=90)
    await LeadServices.claim_lead(db, lead.id, agent.id)

    state = await AgentServices.refresh_daily_state(db, agent.id, now + timedelta(seconds=1))

    assert state.local_date == local_date(now, resolve_timezone("America/Chicago"))
    assert state.timezone == "America/Chicago"
    assert state.ai_calls == 2
    assert state.ai_minutes == 2.08
    assert state.quick_hangups == 1
    assert state.engaged_calls == 1
    assert state.leads == 1
    assert state.high_intent == 1
    assert 0 <= state.aei_score <= 100


async def test_refresh_updates_the_same_row(db, agent):
    first = await AgentServices.get_daily_state(db, agent.id)
    second = await AgentServices.get_daily_state(db, agent.id)
    assert first.id == second.id


async def test_refresh_unknown_agent(db):
    with pytest.raises(LookupError):
        await AgentServices.refresh_daily_state(db, uuid4())


async def test_daily_reset_is_idempotent(db, agent, other_agent):
    now = datetime.utcnow()

    first = await AgentServices.reset_due_agents(db, now)
    assert set(first) == {agent.id, other_agent.id}
    assert await AgentServices.reset_due_agents(db, now) == []

    tomorrow = await AgentServices.reset_due_agents(db, now + timedelta(days=1))
    assert set(tomorrow) == {agent.id, other_agent.id}

    latest = await crud_daily_state.get_latest_state(db, agent.id)
    assert latest.ai_calls == 0
    assert latest.reset_at == now + timedelta(days=1)
