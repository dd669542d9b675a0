"""User model: identity as issued by the auth provider, plus role and tenant."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Boolean
from sqlalchemy.dialects.postgresql import UUID
import uuid
from datetime import datetime
from enum import Enum
from vai_api.core.database import Base


class Role(str, Enum):
    SUPER_ADMIN_ROOT = "super_admin_root"
    SUPER_ADMIN = "super_admin"
    SOPORTE = "soporte"
    EMPRESA = "empresa"
    ASESOR = "asesor"


ADMIN_ROLES = (Role.SUPER_ADMIN_ROOT.value, Role.SUPER_ADMIN.value)
STAFF_ROLES = ADMIN_ROLES + (Role.SOPORTE.value,)


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    role = Column(String, nullable=False, default=Role.EMPRESA.value)
    company_id = Column(UUID(as_uuid=True), ForeignKey("companies.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = Column(Boolean, default=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
