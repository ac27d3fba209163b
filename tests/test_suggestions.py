from types import SimpleNamespace

import pytest

from brokerdesk.crud import keyword_suggestions as crud_suggestions
from brokerdesk.models.enums import KeywordScope, KeywordType, SuggestionStatus
from brokerdesk.services.errors import TransitionConflict
from brokerdesk.services.keyword_scoring import KeywordScoringEngine
from brokerdesk.services.keyword_services import KeywordServices, suggestion_candidates
from brokerdesk.services.lead_services import LeadServices
from brokerdesk.services.load_services import LoadServices


def test_suggestion_candidates_from_a_load():
    load = SimpleNamespace(
        load_number="LD-00042",
        pickup_city="Dallas",
        pickup_state="TX",
        dest_city="Atlanta",
        dest_state="GA",
        commodity="Frozen Chicken",
    )
    assert suggestion_candidates(load) == [
        ("LD-00042", KeywordType.LOAD),
        ("Dallas, TX", KeywordType.CITY),
        ("Atlanta, GA", KeywordType.CITY),
        ("Dallas → Atlanta", KeywordType.LANE),
        ("Frozen Chicken", KeywordType.COMMODITY),
    ]


def test_suggestion_candidates_skip_missing_parts():
    load = SimpleNamespace(
        load_number="LD-7", pickup_city="Reno", pickup_state=None, dest_city=None, dest_state=None, commodity=None
    )
    assert suggestion_candidates(load) == [("LD-7", KeywordType.LOAD), ("Reno", KeywordType.CITY)]


async def test_booking_records_suggestions_once(db, agency_id, agent, make_load, make_lead):
    first = await make_load(load_number="LD-10001")
    second = await make_load(load_number="LD-10002")
    await LeadServices.resolve_lead(db, (await make_lead()).id, "booked", agent.id, load_id=first.id)
    await LoadServices.book_load(db, second.id, agent_id=agent.id)

    pending = await KeywordServices.list_suggestions(db, agency_id, limit=50)
    keywords = sorted(s.keyword for s in pending)
    # same lane on both loads: city, lane and commodity suggestions are not repeated
    assert keywords == sorted([
        "LD-10001", "LD-10002", "Dallas, TX", "Atlanta, GA", "Dallas → Atlanta", "Paper Products",
    ])
    assert all(s.status == SuggestionStatus.PENDING for s in pending)


async def test_generate_requires_booked_load(db, make_load):
    load = await make_load()
    with pytest.raises(TransitionConflict):
        await KeywordServices.generate_suggestions(db, load.id)


async def test_generate_skips_pending_duplicates(db, agent, make_load):
    load = await make_load()
    await LoadServices.book_load(db, load.id, agent_id=agent.id)

    assert await KeywordServices.generate_suggestions(db, load.id) == []


async def test_accept_creates_keyword_and_marks_suggestion(db, agency_id, agent, make_load):
    load = await make_load(commodity="Steel Coils")
    await LoadServices.book_load(db, load.id, agent_id=agent.id)
    suggestion = next(s for s in await KeywordServices.list_suggestions(db, agency_id, 50) if s.keyword == "Steel Coils")
    suggestion_id, agent_id = suggestion.id, agent.id

    keyword = await KeywordServices.accept_suggestion(db, suggestion_id, agent_id)

    assert keyword.keyword == "Steel Coils"
    assert keyword.keyword_type == KeywordType.COMMODITY
    assert keyword.scope == KeywordScope.AGENT
    assert keyword.agent_id == agent_id
    assert keyword.load_id == load.id

    stored = await crud_suggestions.get_suggestion(db, suggestion_id)
    assert stored.status == SuggestionStatus.ACCEPTED
    assert stored.accepted_by == agent_id

    with pytest.raises(TransitionConflict):
        await KeywordServices.accept_suggestion(db, suggestion_id, agent_id)


async def test_dismiss(db, agency_id, agent, make_load):
    load = await make_load()
    await LoadServices.book_load(db, load.id, agent_id=agent.id)
    suggestion = (await KeywordServices.list_suggestions(db, agency_id))[0]
    suggestion_id = suggestion.id

    await KeywordServices.dismiss_suggestion(db, suggestion_id)
    assert (await crud_suggestions.get_suggestion(db, suggestion_id)).status == SuggestionStatus.DISMISSED

    with pytest.raises(TransitionConflict):
        await KeywordServices.dismiss_suggestion(db, suggestion_id)


async def test_keyword_analytics_counts_bookings(db, agency_id, agent, make_lead, make_load):
    keyword = await KeywordServices.create_keyword(db, agent.id, "rate")
    booked_lead, idle_lead = await make_lead(), await make_lead()
    await KeywordScoringEngine.apply_transcript(db, booked_lead.id, "your rate?", agent_id=agent.id)
    await KeywordScoringEngine.apply_transcript(db, idle_lead.id, "rate is low", agent_id=agent.id)
    load = await make_load()
    await LeadServices.resolve_lead(db, booked_lead.id, "booked", agent.id, load_id=load.id)

    [item] = await KeywordServices.keyword_analytics(db, agency_id)
    assert item.keyword_id == keyword.id
    assert item.match_count == 2
    assert item.booked_count == 1
    assert item.conversion_rate == 50.0
