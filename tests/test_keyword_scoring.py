import logging
from types import SimpleNamespace
from uuid import uuid4

import pytest

from brokerdesk.crud import keyword_match_events as crud_match_events
from brokerdesk.crud import lead as crud_lead
from brokerdesk.models.enums import AgentRole, KeywordScope, MatchType
from brokerdesk.services.keyword_scoring import KeywordScoringEngine, adjusted_intent_score
from brokerdesk.services.keyword_services import KeywordServices


def kw(text, match_type=MatchType.CONTAINS, scope=KeywordScope.GLOBAL, case_sensitive=False, agent_id=None):
    return SimpleNamespace(
        id=uuid4(),
        keyword=text,
        scope=scope,
        agent_id=agent_id,
        weight=0.85,
        match_type=match_type,
        case_sensitive=case_sensitive,
    )


# ---------------- Pure matching ----------------

def test_contains_is_case_insensitive_by_default():
    matches = KeywordScoringEngine.match_keywords([kw("Reefer")], "need a REEFER out of dallas")
    assert [m.keyword for m in matches] == ["Reefer"]


def test_case_sensitive_contains():
    keyword = kw("Reefer", case_sensitive=True)
    assert KeywordScoringEngine.match_keywords([keyword], "need a reefer") == []
    assert len(KeywordScoringEngine.match_keywords([keyword], "need a Reefer")) == 1


def test_exact_matches_whole_words_only():
    keyword = kw("rate", match_type=MatchType.EXACT)
    assert KeywordScoringEngine.match_keywords([keyword], "what's the rate on this") != []
    assert KeywordScoringEngine.match_keywords([keyword], "we were overrated") == []


def test_regex_match_and_invalid_pattern(caplog):
    good = kw(r"LD-\d{5}", match_type=MatchType.REGEX)
    broken = kw("([unclosed", match_type=MatchType.REGEX)

    with caplog.at_level(logging.WARNING):
        matches = KeywordScoringEngine.match_keywords([good, broken], "calling about ld-12345")

    assert [m.keyword_id for m in matches] == [good.id]
    assert "Invalid keyword pattern" in caplog.text


@pytest.mark.parametrize("text", [None, "", "   "])
def test_empty_text_matches_nothing(text):
    assert KeywordScoringEngine.match_keywords([kw("rate")], text) == []


def test_personal_matches_listed_before_global():
    owner = uuid4()
    matches = KeywordScoringEngine.match_keywords(
        [kw("dallas"), kw("rate", scope=KeywordScope.AGENT, agent_id=owner)],
        "rate out of dallas",
    )
    assert [m.scope for m in matches] == [KeywordScope.AGENT, KeywordScope.GLOBAL]
    assert matches[0].agent_id == owner


@pytest.mark.parametrize("prior, expected", [(None, 85), (40, 85), (85, 85), (92, 92)])
def test_adjusted_intent_score_never_lowers(prior, expected):
    assert adjusted_intent_score(prior) == expected


# ---------------- Against the store ----------------

async def test_score_keywords_sees_own_and_global_only(db, agency_id, agent, other_agent, make_agent):
    admin = await make_agent(role=AgentRole.ADMIN)
    await KeywordServices.create_keyword(db, agent.id, "reefer")
    await KeywordServices.create_keyword(db, other_agent.id, "flatbed")
    await KeywordServices.create_keyword(db, admin.id, "dallas", scope=KeywordScope.GLOBAL)

    matches = await KeywordScoringEngine.score_keywords(
        db, agency_id, "reefer or flatbed out of dallas", agent_id=agent.id
    )
    assert sorted(m.keyword for m in matches) == ["dallas", "reefer"]


async def test_apply_transcript_raises_intent_and_records_events(db, agent, make_lead):
    lead = await make_lead(intent_score=40, intent_reason_breakdown=["long call"])
    keyword = await KeywordServices.create_keyword(db, agent.id, "rate")

    result = await KeywordScoringEngine.apply_transcript(db, lead.id, "what's your best rate", agent_id=agent.id)

    assert result.intent_score == 85
    assert result.is_high_intent is True
    assert [m.keyword_id for m in result.matches] == [keyword.id]

    stored = await crud_lead.get_lead_by_id(db, lead.id)
    assert stored.intent_reason_breakdown["reasons"] == ["long call"]
    assert stored.intent_reason_breakdown["keyword_match"]["keywords"] == ["rate"]

    events = await crud_match_events.get_events_for_lead(db, lead.id)
    assert len(events) == 1
    assert events[0].agent_id == agent.id
    assert events[0].matched_text == "rate"
    assert events[0].booked is False


async def test_apply_transcript_never_lowers_a_higher_score(db, agent, make_lead):
    lead = await make_lead(intent_score=95)
    await KeywordServices.create_keyword(db, agent.id, "rate")

    result = await KeywordScoringEngine.apply_transcript(db, lead.id, "rate please", agent_id=agent.id)
    assert result.intent_score == 95


async def test_apply_transcript_without_match_writes_nothing(db, agent, make_lead):
    lead = await make_lead()
    await KeywordServices.create_keyword(db, agent.id, "rate")

    result = await KeywordScoringEngine.apply_transcript(db, lead.id, "wrong number", agent_id=agent.id)

    assert result.matches == []
    assert result.is_high_intent is False
    assert await crud_match_events.get_events_for_lead(db, lead.id) == []
