# models/lead_event.py
from sqlalchemy import Column, String, Index, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from uuid import uuid4
from brokerdesk.db.base_class import Base

class LeadEvent(Base):
    """Append-only audit trail of lead/load transitions."""
    __tablename__ = "lead_events"

    id = Column(Uuid, primary_key=True, default=uuid4)
    lead_id = Column(Uuid, nullable=True)
    load_id = Column(Uuid, nullable=True)
    agent_id = Column(Uuid, nullable=True)  # NULL for automated (AI/attribution) events
    event_type = Column(String(50), nullable=False)
    previous_status = Column(String(30), nullable=True)
    new_status = Column(String(30), nullable=True)
    meta = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    __table_args__ = (
        Index("idx_lead_events_lead", "lead_id"),
        Index("idx_lead_events_load", "load_id"),
        Index("idx_lead_events_type", "event_type"),
    )
