"""Plan catalog model.

Prices are net (before tax). The custom plan ("Personalizado") is priced from
the Premium plan plus a per-advisor surcharge, see vai_api.services.pricing.
"""

from sqlalchemy import Column, String, Integer, Boolean, DateTime, Numeric, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid

from vai_api.core.database import Base


class Plan(Base):
    __tablename__ = "plans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    name = Column(String, nullable=False, unique=True)
    net_price = Column(Numeric(12, 2), nullable=False, default=0)
    max_advisors = Column(Integer, nullable=False, default=1)
    extra_advisor_price = Column(Numeric(12, 2), nullable=False, default=0)
    cycle_days = Column(Integer, nullable=False, default=30)
    is_trial = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=True, onupdate=func.now())

    # Relationships
    assignments = relationship("CompanyPlan", back_populates="plan")
