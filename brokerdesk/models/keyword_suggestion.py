# models/keyword_suggestion.py
from sqlalchemy import Column, String, DateTime, Index, Uuid
from uuid import uuid4
from brokerdesk.db.base_class import Base
from brokerdesk.models.enums import KeywordScope, KeywordType, SuggestionStatus, enum_column_type

class KeywordSuggestion(Base):
    __tablename__ = "keyword_suggestions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    agency_id = Column(Uuid, nullable=False)
    keyword = Column(String(200), nullable=False)
    keyword_type = Column(enum_column_type(KeywordType, "suggestion_keyword_type"), nullable=False)
    suggested_scope = Column(enum_column_type(KeywordScope, "suggestion_scope"), nullable=False, default=KeywordScope.AGENT)
    load_id = Column(Uuid, nullable=True)
    status = Column(enum_column_type(SuggestionStatus, "suggestion_status"), nullable=False, default=SuggestionStatus.PENDING)
    accepted_by = Column(Uuid, nullable=True)
    accepted_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_suggestions_agency_status", "agency_id", "status"),
    )
