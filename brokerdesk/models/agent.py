# models/agent.py
from sqlalchemy import Column, String, Boolean, Index, Uuid
from uuid import uuid4
from brokerdesk.db.base_class import Base
from brokerdesk.models.enums import AgentRole, enum_column_type

class Agent(Base):
    __tablename__ = "agents"

    id = Column(Uuid, primary_key=True, default=uuid4)
    agency_id = Column(Uuid, nullable=False)
    full_name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    role = Column(enum_column_type(AgentRole, "agent_role"), nullable=False, default=AgentRole.AGENT)
    timezone = Column(String(64), nullable=True)  # IANA name; NULL -> DEFAULT_TIMEZONE
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("idx_agents_agency", "agency_id"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role in (AgentRole.ADMIN, AgentRole.SUPER_ADMIN)
