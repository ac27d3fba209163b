# models/agent_daily_state.py
from sqlalchemy import Column, Date, DateTime, Integer, Float, String, Index, UniqueConstraint, Uuid
from uuid import uuid4
from brokerdesk.db.base_class import Base

class AgentDailyState(Base):
    __tablename__ = "agent_daily_state"

    id = Column(Uuid, primary_key=True, default=uuid4)
    agent_id = Column(Uuid, nullable=False)
    agency_id = Column(Uuid, nullable=False)
    local_date = Column(Date, nullable=False)
    timezone = Column(String(64), nullable=False)

    ai_calls = Column(Integer, nullable=False, default=0)
    ai_minutes = Column(Float, nullable=False, default=0.0)
    engaged_calls = Column(Integer, nullable=False, default=0)
    quick_hangups = Column(Integer, nullable=False, default=0)
    leads = Column(Integer, nullable=False, default=0)
    high_intent = Column(Integer, nullable=False, default=0)
    booked = Column(Integer, nullable=False, default=0)
    callback_speed_seconds = Column(Integer, nullable=False, default=0)
    aei_score = Column(Integer, nullable=False, default=0)
    reset_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("agent_id", "local_date", name="uq_agent_daily_state_date"),
        Index("idx_daily_state_agency_date", "agency_id", "local_date"),
    )
