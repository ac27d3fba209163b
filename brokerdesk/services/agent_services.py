import logging
from typing import List, Optional
from uuid import UUID
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.crud import agent as crud_agent
from brokerdesk.crud import agent_daily_state as crud_daily_state
from brokerdesk.crud import calls as crud_calls
from brokerdesk.crud import lead as crud_lead
from brokerdesk.db.unit_of_work import UnitOfWork
from brokerdesk.models import AgentDailyState
from brokerdesk.models.enums import LeadStatus
from brokerdesk.services.date_windows import local_date, local_day_bounds, resolve_timezone
from brokerdesk.services.errors import EntityNotFound
from brokerdesk.services.metrics_aggregator import call_duration, is_engaged_call, is_high_intent, is_quick_hangup

logger = logging.getLogger(__name__)

TARGET_AI_MINUTES = 60
TARGET_CALLBACK_SECONDS = 300


def compute_aei(ai_minutes: float, high_intent: int, total_calls: int, avg_callback_seconds: float) -> int:
    """
    Agent Efficiency Index, 0-100:
    minutes saved (40) + high-intent share of calls (40) + callback speed (20).
    No callback data counts as full speed.
    """
    minutes_component = min(ai_minutes / TARGET_AI_MINUTES, 1) * 40
    intent_ratio = high_intent / total_calls if total_calls > 0 else 0
    intent_component = intent_ratio * 40
    if avg_callback_seconds > 0:
        speed_ratio = max(0.0, 1 - avg_callback_seconds / TARGET_CALLBACK_SECONDS)
    else:
        speed_ratio = 1.0
    speed_component = speed_ratio * 20
    return min(100, max(0, round(minutes_component + intent_component + speed_component)))


class AgentServices:
    """
        Service class for the per-agent daily performance state.

        The daily row is keyed by the agent's local calendar date (agent
        timezone, DEFAULT_TIMEZONE when unset), so "today" rolls over at the
        agent's midnight rather than UTC's.

        Methods:
            refresh_daily_state(db, agent_id, now):
                Recompute today's counters and AEI from calls and leads in the
                agent's local day and upsert the row.
            reset_due_agents(db, now):
                Start a zeroed row for every active agent whose local date has
                moved past its latest row. Safe to run repeatedly.
    """

    @staticmethod
    async def refresh_daily_state(db: AsyncSession, agent_id: UUID, now: Optional[datetime] = None) -> AgentDailyState:
        now = now or datetime.utcnow()
        agent = await crud_agent.get_agent_by_id(db, agent_id)
        if not agent:
            raise EntityNotFound("agent", agent_id)

        tz = resolve_timezone(agent.timezone)
        today = local_date(now, tz)
        start, end = local_day_bounds(today, tz)

        calls = await crud_calls.get_calls_in_window(db, agent.agency_id, start, end, agent_id=agent.id)
        leads = await crud_lead.get_leads_in_window(db, agent.agency_id, start, end, agent_id=agent.id)
        lead_by_call = {l.phone_call_id: l for l in leads if l.phone_call_id}

        ai_calls = [c for c in calls if c.is_ai]
        ai_seconds = sum(call_duration(c) or 0 for c in ai_calls)
        claimed = [l for l in leads if l.claimed_at and l.claimed_by == agent.id]
        callback_speed = (
            sum((l.claimed_at - l.created_at).total_seconds() for l in claimed) / len(claimed) if claimed else 0
        )
        high_intent = sum(1 for l in leads if is_high_intent(None, l))

        counters = {
            "ai_calls": len(ai_calls),
            "ai_minutes": round(ai_seconds / 60, 2),
            "engaged_calls": sum(1 for c in calls if is_engaged_call(c, lead_by_call.get(c.id))),
            "quick_hangups": sum(1 for c in calls if is_quick_hangup(c)),
            "leads": len(leads),
            "high_intent": high_intent,
            "booked": sum(1 for l in leads if l.status == LeadStatus.BOOKED and l.booked_by == agent.id),
            "callback_speed_seconds": max(0, int(callback_speed)),
        }
        counters["aei_score"] = compute_aei(
            counters["ai_minutes"], high_intent, len(ai_calls), counters["callback_speed_seconds"]
        )

        async with UnitOfWork(db) as uow:
            state = await crud_daily_state.get_state(uow.session, agent.id, today)
            if state is None:
                state = await crud_daily_state.create_state(
                    uow.session, agent.id, agent.agency_id, today, tz.key
                )
            for field, value in counters.items():
                setattr(state, field, value)
            state.updated_at = now

        logger.info("Daily state for agent %s on %s refreshed (AEI %s)", agent.id, today, counters["aei_score"])
        return state

    @staticmethod
    async def get_daily_state(db: AsyncSession, agent_id: UUID, now: Optional[datetime] = None) -> AgentDailyState:
        """Today's row, recomputed."""
        return await AgentServices.refresh_daily_state(db, agent_id, now)

    @staticmethod
    async def reset_due_agents(db: AsyncSession, now: Optional[datetime] = None) -> List[UUID]:
        now = now or datetime.utcnow()
        reset_ids: List[UUID] = []

        async with UnitOfWork(db) as uow:
            for agent in await crud_agent.get_active_agents(uow.session):
                tz = resolve_timezone(agent.timezone)
                today = local_date(now, tz)
                latest = await crud_daily_state.get_latest_state(uow.session, agent.id)
                if latest is not None and latest.local_date >= today:
                    continue
                await crud_daily_state.create_state(
                    uow.session, agent.id, agent.agency_id, today, tz.key, reset_at=now
                )
                reset_ids.append(agent.id)

        if reset_ids:
            logger.info("Daily reset: %d agent(s) rolled over", len(reset_ids))
        return reset_ids
