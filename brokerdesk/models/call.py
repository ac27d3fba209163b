# models/call.py
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, Index, Uuid
from uuid import uuid4
from datetime import datetime
from brokerdesk.db.base_class import Base

class Call(Base):
    """Call record written by call ingestion. Read-only for the engine."""
    __tablename__ = "calls"

    id = Column(Uuid, primary_key=True, default=uuid4)
    agency_id = Column(Uuid, nullable=False)
    agent_id = Column(Uuid, nullable=True)  # agent the call was routed to, if any
    external_number = Column(String(20), nullable=True)
    duration_seconds = Column(Integer, nullable=True)  # NULL means unknown, not zero
    transcript = Column(Text, nullable=True)
    is_high_intent = Column(Boolean, nullable=False, default=False)
    carrier_mc = Column(String(20), nullable=True)
    carrier_usdot = Column(String(20), nullable=True)
    load_number = Column(String(50), nullable=True)  # load discussed on the call
    is_ai = Column(Boolean, nullable=False, default=True)
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_calls_agency_started", "agency_id", "started_at"),
        Index("idx_calls_load_number", "agency_id", "load_number"),
    )
