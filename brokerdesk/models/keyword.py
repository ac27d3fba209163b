# models/keyword.py
from sqlalchemy import Column, String, Text, Float, Boolean, DateTime, CheckConstraint, Index, Uuid
from uuid import uuid4
from brokerdesk.db.base_class import Base
from brokerdesk.models.enums import KeywordScope, KeywordType, MatchType, enum_column_type

class Keyword(Base):
    __tablename__ = "high_intent_keywords"

    id = Column(Uuid, primary_key=True, default=uuid4)
    agency_id = Column(Uuid, nullable=False)
    keyword = Column(String(200), nullable=False)
    keyword_type = Column(enum_column_type(KeywordType, "keyword_type"), nullable=False, default=KeywordType.CUSTOM)
    scope = Column(enum_column_type(KeywordScope, "keyword_scope"), nullable=False, default=KeywordScope.AGENT)
    agent_id = Column(Uuid, nullable=True)  # owner, agent scope only
    created_by = Column(Uuid, nullable=True)
    load_id = Column(Uuid, nullable=True)  # load the keyword was suggested from
    match_type = Column(enum_column_type(MatchType, "keyword_match_type"), nullable=False, default=MatchType.CONTAINS)
    case_sensitive = Column(Boolean, nullable=False, default=False)
    weight = Column(Float, nullable=False, default=0.85)
    premium_response = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "(scope = 'agent' AND agent_id IS NOT NULL) OR (scope = 'global' AND agent_id IS NULL)",
            name="chk_keyword_scope_owner",
        ),
        Index("idx_keywords_agency_active", "agency_id", "active", "expires_at"),
        Index("idx_keywords_agent", "agent_id"),
        Index("idx_keywords_created_by", "created_by", "created_at"),
    )
