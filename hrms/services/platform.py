"""
Platform Admin Sweeps

Visitors and lookups used by the platform-admin views. Each one reads a
single tenant; CrossTenantAggregator runs it across all active tenants
and merges the results.
"""
from datetime import datetime
from typing import List, Optional

from hrms.schemas.records import ActivityRecord, EmployeeRecord
from hrms.tenancy.aggregator import TenantLookup, TenantVisitor
from hrms.tenancy.connection import ConnectionHandle
from hrms.tenancy.directory import TenantRecord

# Rows without a timestamp sort as oldest
_EPOCH = datetime.min


class EmployeeDirectoryVisitor(TenantVisitor[EmployeeRecord]):
    """All employees of every tenant, newest first."""
    descending = True

    async def fetch(self, tenant: TenantRecord, connection: ConnectionHandle) -> List[EmployeeRecord]:
        Employee = connection.model("Employee", EmployeeRecord)
        return await Employee.find(order_by="created_at", descending=True)

    def sort_key(self, item: EmployeeRecord):
        return item.created_at or _EPOCH


class ActivityFeedVisitor(TenantVisitor[ActivityRecord]):
    """
    Platform-wide activity feed: the newest `per_tenant` entries of each
    tenant, merged and cut to the newest `limit` overall.
    """
    descending = True

    def __init__(self, per_tenant: int = 50, limit: Optional[int] = 100):
        self.per_tenant = per_tenant
        self.limit = limit

    async def fetch(self, tenant: TenantRecord, connection: ConnectionHandle) -> List[ActivityRecord]:
        Activity = connection.model("Activity", ActivityRecord)
        return await Activity.find(order_by="time", descending=True, limit=self.per_tenant)

    def sort_key(self, item: ActivityRecord):
        return item.time or _EPOCH


class EmployeeLookup(TenantLookup[EmployeeRecord]):
    """Find one employee by id, wherever it lives."""

    def __init__(self, employee_id: str):
        self.employee_id = employee_id

    async def find(self, tenant: TenantRecord, connection: ConnectionHandle) -> Optional[EmployeeRecord]:
        Employee = connection.model("Employee", EmployeeRecord)
        return await Employee.get(self.employee_id)
