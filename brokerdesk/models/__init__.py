from .agent import Agent
from .call import Call
from .load import Load
from .lead import Lead
from .lead_event import LeadEvent
from .keyword import Keyword
from .keyword_match_event import KeywordMatchEvent
from .keyword_suggestion import KeywordSuggestion
from .agent_daily_state import AgentDailyState

__all__ = ["Agent", "Call", "Load", "Lead", "LeadEvent", "Keyword", "KeywordMatchEvent", "KeywordSuggestion", "AgentDailyState"]
