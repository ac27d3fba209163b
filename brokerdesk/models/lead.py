# models/lead.py
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, CheckConstraint, Index, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from uuid import uuid4
from brokerdesk.db.base_class import Base
from brokerdesk.models.enums import LeadStatus, CloseReason, enum_column_type

class Lead(Base):
    __tablename__ = "leads"

    id = Column(Uuid, primary_key=True, default=uuid4)
    agency_id = Column(Uuid, nullable=False)

    # Caller / carrier
    caller_phone = Column(String(20), nullable=False)
    caller_name = Column(String(200), nullable=True)
    caller_company = Column(String(200), nullable=True)
    carrier_mc = Column(String(20), nullable=True)
    carrier_usdot = Column(String(20), nullable=True)
    carrier_verified_at = Column(DateTime, nullable=True)  # stamped by carrier verification

    status = Column(enum_column_type(LeadStatus, "lead_status"), nullable=False, default=LeadStatus.PENDING)

    # Intent
    intent_score = Column(Integer, nullable=True)
    is_high_intent = Column(Boolean, nullable=False, default=False)
    # legacy list of strings, or {"keyword_match": {...}}
    intent_reason_breakdown = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    # Claim / book / close
    claimed_by = Column(Uuid, nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    booked_by = Column(Uuid, nullable=True)
    booked_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)
    close_reason = Column(enum_column_type(CloseReason, "lead_close_reason"), nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    # Soft resolutions
    callback_requested_at = Column(DateTime, nullable=True)
    last_contact_attempt_at = Column(DateTime, nullable=True)

    # Relationships
    load_id = Column(Uuid, ForeignKey("loads.id", ondelete="SET NULL"), nullable=True)
    phone_call_id = Column(Uuid, ForeignKey("calls.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        CheckConstraint("intent_score IS NULL OR intent_score BETWEEN 0 AND 100", name="chk_lead_intent_score"),
        CheckConstraint(
            "(claimed_by IS NULL AND claimed_at IS NULL) OR (claimed_by IS NOT NULL AND claimed_at IS NOT NULL)",
            name="chk_lead_claim_pair",
        ),
        CheckConstraint(
            "status <> 'booked' OR (booked_by IS NOT NULL AND booked_at IS NOT NULL AND load_id IS NOT NULL)",
            name="chk_lead_booked_fields",
        ),
        CheckConstraint(
            "status <> 'closed' OR (closed_at IS NOT NULL AND close_reason IS NOT NULL)",
            name="chk_lead_closed_fields",
        ),
        Index("idx_leads_agency_status", "agency_id", "status"),
        Index("idx_leads_load", "load_id"),
        Index("idx_leads_carrier_mc", "agency_id", "carrier_mc"),
        Index("idx_leads_carrier_usdot", "agency_id", "carrier_usdot"),
    )
