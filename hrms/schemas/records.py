"""
Tenant Record Schemas

Shapes of the records stored in each tenant's own database. The
tenancy core does not interpret them; it compiles them onto a tenant
connection via ConnectionHandle.model(name, schema).

Only the fields platform-admin views read are declared here. Business
modules declare their own schemas the same way.
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from datetime import datetime
import uuid


def _new_id() -> str:
    return uuid.uuid4().hex


class EmployeeRecord(BaseModel):
    """Employee row as stored in a tenant database."""
    id: str = Field(default_factory=_new_id)
    employee_code: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    department: Optional[str] = None
    role: Optional[str] = None
    status: str = "Active"
    joining_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class ActivityRecord(BaseModel):
    """Audit-style activity entry ("Employee created", "Payroll run posted", ...)."""
    id: str = Field(default_factory=_new_id)
    action: str
    company: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    time: datetime = Field(default_factory=datetime.utcnow)


# Bound on every tenant connection as soon as it becomes ready
TENANT_MODELS = {
    "Employee": EmployeeRecord,
    "Activity": ActivityRecord,
}
