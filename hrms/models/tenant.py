"""
Tenant Model

The tenant is the primary isolation boundary: each tenant (one customer
company) owns a separate data-plane database. This table lives in the
control-plane database and only describes where that data lives.

ARCHITECTURAL DECISION: Database-per-tenant.
- The physical database name defaults to company_<id>
- database_name overrides it for tenants that were moved or renamed
- No DSNs or passwords are stored here, only the database name
"""
from sqlalchemy import Column, String, DateTime, JSON, Index
from datetime import datetime
from hrms.database import Base
import uuid


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Human-facing identification
    name = Column(String(255), nullable=False)
    code = Column(String(50), unique=True, nullable=True, index=True)

    # Lifecycle: pending -> active -> suspended / deleted
    status = Column(String(20), default="active", nullable=False, index=True)

    plan = Column(String(20), default="free", nullable=False)

    # Enabled product modules, e.g. ["hr", "payroll", "ess"]
    modules = Column(JSON, default=list, nullable=False)

    # NULL = use the derived company_<id> name
    database_name = Column(String(63), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_tenant_status_code', 'status', 'code'),
    )

    def __repr__(self):
        return f"<Tenant {self.code or self.id} ({self.status})>"
