# models/load.py
from sqlalchemy import Column, String, Numeric, Boolean, DateTime, CheckConstraint, UniqueConstraint, Index, Uuid
from uuid import uuid4
from brokerdesk.db.base_class import Base
from brokerdesk.models.enums import LoadStatus, CloseReason, BookedSource, enum_column_type

class Load(Base):
    __tablename__ = "loads"

    id = Column(Uuid, primary_key=True, default=uuid4)
    agency_id = Column(Uuid, nullable=False)
    load_number = Column(String(50), nullable=False)

    # Route
    pickup_city = Column(String(100), nullable=True)
    pickup_state = Column(String(2), nullable=True)
    dest_city = Column(String(100), nullable=True)
    dest_state = Column(String(2), nullable=True)
    trailer_type = Column(String(50), nullable=True)
    commodity = Column(String(200), nullable=True)

    # Financials
    target_pay = Column(Numeric(12, 2), nullable=True)
    max_pay = Column(Numeric(12, 2), nullable=True)
    target_commission = Column(Numeric(12, 2), nullable=True)
    max_commission = Column(Numeric(12, 2), nullable=True)
    customer_invoice_total = Column(Numeric(12, 2), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    status = Column(enum_column_type(LoadStatus, "load_status"), nullable=False, default=LoadStatus.OPEN)
    close_reason = Column(enum_column_type(CloseReason, "load_close_reason"), nullable=True)

    claimed_by = Column(Uuid, nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    booked_by = Column(Uuid, nullable=True)
    booked_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)

    # Attribution; consistency with leads.load_id is kept by the attribution matcher
    booked_source = Column(enum_column_type(BookedSource, "booked_source"), nullable=False, default=BookedSource.MANUAL)
    booked_lead_id = Column(Uuid, nullable=True)
    booked_call_id = Column(Uuid, nullable=True)
    attribution_match_type = Column(String(30), nullable=True)

    __table_args__ = (
        UniqueConstraint("agency_id", "load_number", name="uq_load_agency_number"),
        CheckConstraint(
            "(claimed_by IS NULL AND claimed_at IS NULL) OR (claimed_by IS NOT NULL AND claimed_at IS NOT NULL)",
            name="chk_load_claim_pair",
        ),
        CheckConstraint(
            "status <> 'booked' OR (booked_by IS NOT NULL AND booked_at IS NOT NULL)",
            name="chk_load_booked_fields",
        ),
        CheckConstraint(
            "status <> 'closed' OR (closed_at IS NOT NULL AND close_reason IS NOT NULL)",
            name="chk_load_closed_fields",
        ),
        Index("idx_loads_agency_status", "agency_id", "status"),
        Index("idx_loads_booked_lead", "booked_lead_id"),
    )
