"""Company (tenant) and advisor models.

Each company is one real-estate agency. Its active advisors are the seats
counted against the plan's capacity.
"""

from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
from vai_api.core.database import Base


class Company(Base):
    __tablename__ = "companies"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    trade_name = Column(String, nullable=True)
    legal_name = Column(String, nullable=True)
    tax_id = Column(String, nullable=True, index=True)  # CUIT
    owner_user_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    advisors = relationship("Advisor", back_populates="company")
    plan_assignments = relationship("CompanyPlan", back_populates="company")

    @property
    def display_name(self) -> str:
        return self.trade_name or self.legal_name or ""


class Advisor(Base):
    __tablename__ = "advisors"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    company = relationship("Company", back_populates="advisors")
