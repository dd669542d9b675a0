"""Financial movement (ledger entry) model.

``period`` and ``subtype`` are the dedup keys used by the period simulator and
the upgrade flow. They are mirrored into the free-form ``metadata`` map
(``periodo`` / ``subtipo``) for consumers that read the map only.
"""

from sqlalchemy import (
    Column, String, Date, DateTime, Numeric, ForeignKey, Index, JSON, UniqueConstraint, and_,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
import uuid
from datetime import datetime
from enum import Enum
from vai_api.core.database import Base


class MovementType(str, Enum):
    SUBSCRIPTION = "subscription"
    EXTRA_ASESOR = "extra_asesor"
    AJUSTE = "ajuste"


class MovementState(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class Gateway(str, Enum):
    SIMULADA = "simulada"
    SANDBOX = "sandbox"
    MERCADOPAGO = "mercadopago"
    STRIPE = "stripe"


UPGRADE_PRORATION = "upgrade_prorrateo"


class FinancialMovement(Base):
    __tablename__ = "financial_movements"
    __table_args__ = (
        UniqueConstraint("company_id", "period", "type", "gateway", name="uq_movements_company_period_type"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    type = Column(String, nullable=False, index=True)
    state = Column(String, nullable=False, default=MovementState.PENDING.value, index=True)
    currency = Column(String, nullable=False, default="ARS")
    net_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tax = Column(Numeric(12, 2), nullable=True)
    total = Column(Numeric(12, 2), nullable=True)
    gateway = Column(String, nullable=False, default=Gateway.SIMULADA.value)
    gateway_reference = Column(String, nullable=True)
    description = Column(String, nullable=True)
    origin = Column(String, nullable=True)  # sistema | usuario

    # Dedup keys
    period = Column(String(7), nullable=True, index=True)  # YYYY-MM
    subtype = Column(String, nullable=True)
    cycle_start = Column(Date, nullable=True)

    extra = Column("metadata", JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# One pending upgrade-proration charge per company per cycle.
Index(
    "uq_movements_pending_upgrade_per_cycle",
    FinancialMovement.company_id,
    FinancialMovement.cycle_start,
    unique=True,
    postgresql_where=and_(
        FinancialMovement.state == MovementState.PENDING.value,
        FinancialMovement.subtype == UPGRADE_PRORATION,
    ),
    sqlite_where=and_(
        FinancialMovement.state == MovementState.PENDING.value,
        FinancialMovement.subtype == UPGRADE_PRORATION,
    ),
)
