"""Company-plan assignment: one interval during which a company is on a plan.

Rows are deactivated (never deleted) when superseded. At most one row per
company is active; the partial unique index below backs that up at the
database level.
"""

from sqlalchemy import Column, Integer, Boolean, Date, DateTime, Numeric, ForeignKey, Index, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid

from vai_api.core.database import Base


class CompanyPlan(Base):
    __tablename__ = "company_plans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("plans.id", ondelete="RESTRICT"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    max_advisors_override = Column(Integer, nullable=True)
    net_price_override = Column(Numeric(12, 2), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=True, onupdate=func.now())

    # Relationships
    company = relationship("Company", back_populates="plan_assignments")
    plan = relationship("Plan", back_populates="assignments")


Index(
    "uq_company_plans_one_active",
    CompanyPlan.company_id,
    unique=True,
    postgresql_where=CompanyPlan.active.is_(True),
    sqlite_where=CompanyPlan.active.is_(True),
)
