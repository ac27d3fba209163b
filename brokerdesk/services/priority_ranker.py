from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
from datetime import datetime

from brokerdesk.models.enums import KeywordScope
from brokerdesk.schemas.lead import PriorityReason, PriorityResult

# Point model
MC_POINTS = 30
DOT_POINTS = 20
COMPANY_POINTS = 15
LOAD_POINTS = 25
CALLBACK_POINTS = 10
VERIFIED_POINTS = 10
PERSONAL_KEYWORD_POINTS = 15
GLOBAL_KEYWORD_POINTS = 10
KEYWORD_BONUS_CAP = 30
HIGH_INTENT_POINTS = 15
MAX_TIME_BONUS = 10

MAX_REASONS = 3
MAX_KEYWORD_REASONS = 2

# Reason order, most actionable first
PRIORITY_PERSONAL_KEYWORD = -1
PRIORITY_GLOBAL_OR_INTENT = 0
PRIORITY_MC = 1
PRIORITY_DOT = 2
PRIORITY_COMPANY = 3
PRIORITY_LOAD = 4
PRIORITY_CALLBACK = 5
PRIORITY_VERIFIED = 6


class PriorityRanker:
    """
        "Why this lead": maps a lead snapshot (plus the keyword matches found
        for it) to a bounded priority score and the reasons behind it.

        Scoring (additive, then clamped to 0..100):
        - Carrier MC +30, DOT +20, caller company +15, attached load +25,
          callback requested +10, verified carrier +10.
        - Keyword matches: personal 15, global 10, summed and capped at 30.
        - High-intent flag +15, only when no keyword matches were supplied.
        - +1 per full hour in queue, capped at +10.

        Reasons are stably sorted by a fixed order (personal keyword, then
        global keyword / high intent, MC, DOT, company, load, callback,
        verified) and only the top 3 are returned.

        Pure: no I/O, deterministic for a given lead snapshot and `now`.
    """

    @staticmethod
    def rank_lead(
        lead: Any,
        matched_keywords: Iterable[Any] = (),
        now: Optional[datetime] = None,
    ) -> PriorityResult:
        now = now or datetime.utcnow()
        matches = list(matched_keywords)
        reasons: List[PriorityReason] = []
        score = 0

        if getattr(lead, "carrier_mc", None):
            score += MC_POINTS
            reasons.append(PriorityReason(code="mc", label="MC provided", icon="truck", priority=PRIORITY_MC))

        if getattr(lead, "carrier_usdot", None):
            score += DOT_POINTS
            reasons.append(PriorityReason(code="dot", label="DOT provided", icon="shield", priority=PRIORITY_DOT))

        if getattr(lead, "caller_company", None):
            score += COMPANY_POINTS
            reasons.append(PriorityReason(code="company", label="Company name", icon="building", priority=PRIORITY_COMPANY))

        if getattr(lead, "load_id", None):
            score += LOAD_POINTS
            reasons.append(PriorityReason(code="load", label="Load # provided", icon="package", priority=PRIORITY_LOAD))

        if getattr(lead, "callback_requested_at", None):
            score += CALLBACK_POINTS
            reasons.append(PriorityReason(code="callback", label="Callback requested", icon="phone", priority=PRIORITY_CALLBACK))

        score += keyword_bonus(matches)
        keyword_reasons = 0
        for match in matches:
            if keyword_reasons >= MAX_KEYWORD_REASONS:
                break
            reasons.append(_keyword_reason(match))
            keyword_reasons += 1

        if getattr(lead, "is_high_intent", False) and not matches:
            score += HIGH_INTENT_POINTS
            reasons.append(PriorityReason(code="high_intent", label="High intent", icon="zap", priority=PRIORITY_GLOBAL_OR_INTENT))

        if getattr(lead, "carrier_verified_at", None):
            score += VERIFIED_POINTS
            reasons.append(PriorityReason(code="verified", label="Verified carrier", icon="check-circle", priority=PRIORITY_VERIFIED))

        hours = hours_in_queue(getattr(lead, "created_at", None), now)
        score += min(hours, MAX_TIME_BONUS)

        score = max(0, min(score, 100))

        # sorted() is stable: equal priorities keep insertion order
        reasons = sorted(reasons, key=lambda r: r.priority)

        return PriorityResult(
            score=score,
            reasons=reasons[:MAX_REASONS],
            time_in_queue_hours=hours,
        )

    @staticmethod
    def rank_queue(
        leads: Sequence[Any],
        matches_by_lead: Optional[Mapping[Any, Iterable[Any]]] = None,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """
        Order a work queue: highest score first, then longest waiting.
        Returns [{"lead": lead, "priority": PriorityResult}, ...].
        """
        now = now or datetime.utcnow()
        matches_by_lead = matches_by_lead or {}
        ranked = [
            {"lead": lead, "priority": PriorityRanker.rank_lead(lead, matches_by_lead.get(lead.id, ()), now)}
            for lead in leads
        ]
        ranked.sort(key=lambda item: (-item["priority"].score, getattr(item["lead"], "created_at", None) or now))
        return ranked


def keyword_bonus(matches: Iterable[Any]) -> int:
    """Personal 15 / global 10 per match, capped at 30 in total."""
    total = 0
    for match in matches:
        total += PERSONAL_KEYWORD_POINTS if _scope(match) == KeywordScope.AGENT else GLOBAL_KEYWORD_POINTS
    return min(total, KEYWORD_BONUS_CAP)


def hours_in_queue(created_at: Optional[datetime], now: datetime) -> int:
    """Full hours since creation; clock skew never yields a negative age."""
    if created_at is None:
        return 0
    seconds = (now - created_at).total_seconds()
    return max(0, int(seconds // 3600))


def format_time_in_queue(hours: int) -> str:
    if hours < 1:
        return "< 1h in queue"
    if hours < 24:
        return f"{hours}h in queue"
    days, remaining = divmod(hours, 24)
    if remaining == 0:
        return f"{days}d in queue"
    return f"{days}d {remaining}h in queue"


def _scope(match: Any) -> KeywordScope:
    scope = match.get("scope") if isinstance(match, Mapping) else getattr(match, "scope", None)
    return KeywordScope(scope)


def _keyword_reason(match: Any) -> PriorityReason:
    keyword = match.get("keyword") if isinstance(match, Mapping) else getattr(match, "keyword", "")
    if _scope(match) == KeywordScope.AGENT:
        return PriorityReason(
            code="personal_keyword",
            label=f'Your keyword: "{keyword}"',
            icon="user",
            priority=PRIORITY_PERSONAL_KEYWORD,
        )
    return PriorityReason(
        code="global_keyword",
        label=f'Global: "{keyword}"',
        icon="globe",
        priority=PRIORITY_GLOBAL_OR_INTENT,
    )
