# models/keyword_match_event.py
from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Uuid
from uuid import uuid4
from brokerdesk.db.base_class import Base

class KeywordMatchEvent(Base):
    """Audit record of a keyword firing. Only `booked_at` is ever stamped after insert."""
    __tablename__ = "keyword_match_events"

    id = Column(Uuid, primary_key=True, default=uuid4)
    agency_id = Column(Uuid, nullable=False)
    keyword_id = Column(Uuid, ForeignKey("high_intent_keywords.id", ondelete="CASCADE"), nullable=False)
    lead_id = Column(Uuid, ForeignKey("leads.id", ondelete="SET NULL"), nullable=True)
    agent_id = Column(Uuid, nullable=True)  # keyword owner
    call_id = Column(Uuid, nullable=True)
    source = Column(String(50), nullable=False)
    matched_text = Column(String(200), nullable=True)
    booked_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_match_events_keyword", "keyword_id"),
        Index("idx_match_events_lead", "lead_id"),
        Index("idx_match_events_agency_time", "agency_id", "created_at"),
    )

    @property
    def booked(self) -> bool:
        return self.booked_at is not None
