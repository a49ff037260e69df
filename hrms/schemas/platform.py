"""
Platform Admin Schemas

Response models for cross-tenant views. Aggregated responses always
carry the tenants that could not be read, so the UI can show partial
data instead of an error page.
"""
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from hrms.schemas.records import ActivityRecord, EmployeeRecord


class TenantInfo(BaseModel):
    """Which tenant a cross-tenant row came from."""
    id: str
    code: Optional[str] = None
    name: str


class FailedTenant(BaseModel):
    tenant_id: str
    tenant_code: Optional[str] = None
    reason: str
    error_type: str

    class Config:
        from_attributes = True


class TenantEmployee(EmployeeRecord):
    tenant: TenantInfo


class TenantActivity(ActivityRecord):
    tenant: TenantInfo


class EmployeeSweepResponse(BaseModel):
    employees: List[TenantEmployee]
    total: int
    tenants_visited: int
    failed_tenants: List[FailedTenant]
    partial: bool


class ActivityFeedResponse(BaseModel):
    activities: List[TenantActivity]
    tenants_visited: int
    failed_tenants: List[FailedTenant]
    partial: bool


class PlatformStatsResponse(BaseModel):
    companies: int
    active_tenants: int
    inactive_tenants: int
    active_modules: int
    open_connections: int


class ConnectionInfo(BaseModel):
    tenant_id: str
    tenant_code: Optional[str] = None
    state: str
    connection_id: str
    models: List[str]
    created_at: datetime
    last_used_at: datetime


class ConnectionListResponse(BaseModel):
    connections: List[ConnectionInfo]
    total: int
