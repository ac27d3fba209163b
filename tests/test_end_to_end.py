from datetime import datetime, timedelta

from brokerdesk.crud import keyword_match_events as crud_match_events
from brokerdesk.crud import lead_events as crud_events
from brokerdesk.crud import load as crud_load
from brokerdesk.models.enums import KeywordScope, LeadStatus, LoadStatus
from brokerdesk.services.keyword_scoring import KeywordScoringEngine
from brokerdesk.services.keyword_services import KeywordServices
from brokerdesk.services.lead_services import LeadServices


async def test_claim_keyword_match_and_book(db, agent, make_lead, make_load):
    t0 = datetime.utcnow()
    lead = await make_lead(created_at=t0)
    load = await make_load()
    assert lead.status == LeadStatus.PENDING
    assert lead.carrier_mc is None and lead.carrier_usdot is None

    await LeadServices.claim_lead(db, lead.id, agent.id, now=t0 + timedelta(seconds=1))

    keyword = await KeywordServices.create_keyword(db, agent.id, "rate", weight=0.85)
    assert keyword.scope == KeywordScope.AGENT
    applied = await KeywordScoringEngine.apply_transcript(
        db, lead.id, "Hi, what's the rate on the Dallas load?", agent_id=agent.id,
        now=t0 + timedelta(seconds=30),
    )
    assert applied.intent_score == 85
    assert applied.is_high_intent is True

    result = await LeadServices.resolve_lead(db, lead.id, "booked", agent.id, load_id=load.id)

    assert result.lead.status == LeadStatus.BOOKED
    assert result.lead.intent_score == 85
    assert result.lead.load_id == load.id

    stored_load = await crud_load.get_load_by_id(db, load.id)
    assert stored_load.status == LoadStatus.BOOKED
    assert stored_load.booked_lead_id == lead.id

    [match_event] = await crud_match_events.get_events_for_lead(db, lead.id)
    assert match_event.keyword_id == keyword.id
    assert match_event.booked is True

    event_types = [e.event_type for e in await crud_events.get_events_for_lead(db, lead.id)]
    assert event_types == ["claimed", "keyword_match", "resolved"]
