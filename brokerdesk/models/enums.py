# models/enums.py
from enum import Enum

from sqlalchemy import Enum as SAEnum


class LeadStatus(str, Enum):
    PENDING = "pending"
    CLAIMED = "claimed"
    BOOKED = "booked"
    CLOSED = "closed"


class LoadStatus(str, Enum):
    OPEN = "open"
    CLAIMED = "claimed"
    BOOKED = "booked"
    CLOSED = "closed"


class CloseReason(str, Enum):
    RATE_TOO_LOW = "rate_too_low"
    LOAD_UNAVAILABLE = "load_unavailable"
    NOT_A_FIT = "not_a_fit"
    COVERED = "covered"
    OTHER = "other"


class BookedSource(str, Enum):
    MANUAL = "manual"
    AI = "ai"


class KeywordScope(str, Enum):
    AGENT = "agent"
    GLOBAL = "global"


class KeywordType(str, Enum):
    CUSTOM = "custom"
    CITY = "city"
    LANE = "lane"
    LOAD = "load"
    COMMODITY = "commodity"


class MatchType(str, Enum):
    CONTAINS = "contains"
    EXACT = "exact"
    REGEX = "regex"


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DISMISSED = "dismissed"


class AgentRole(str, Enum):
    AGENT = "agent"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


def enum_column_type(enum_cls, name: str) -> SAEnum:
    """Non-native enum column storing the member values ('pending', not 'PENDING')."""
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
        length=30,
    )
