"""
Tenancy Core

Tenant id -> isolated data-access context, resolved at runtime.

    registry = TenantConnectionRegistry(directory, locator, connector)
    conn = await registry.get(tenant_id)
    Employee = conn.model("Employee", EmployeeRecord)
    rows = await Employee.find(order_by="created_at", descending=True)

    aggregator = CrossTenantAggregator(registry)
    report = await aggregator.for_each_active_tenant(visitor)
"""
from hrms.tenancy.aggregator import (
    AggregationReport,
    CrossTenantAggregator,
    LookupReport,
    TenantFailure,
    TenantLookup,
    TenantResult,
    TenantVisitor,
)
from hrms.tenancy.connection import ConnectionHandle, ConnectionState, SqlAlchemyConnector
from hrms.tenancy.directory import (
    SqlTenantDirectory,
    TenantDirectory,
    TenantLocator,
    TenantRecord,
    TenantStatus,
)
from hrms.tenancy.models import ModelBinding, SchemaRegistrar
from hrms.tenancy.registry import TenantConnectionRegistry

__all__ = [
    "AggregationReport",
    "ConnectionHandle",
    "ConnectionState",
    "CrossTenantAggregator",
    "LookupReport",
    "ModelBinding",
    "SchemaRegistrar",
    "SqlAlchemyConnector",
    "SqlTenantDirectory",
    "TenantConnectionRegistry",
    "TenantDirectory",
    "TenantFailure",
    "TenantLocator",
    "TenantLookup",
    "TenantRecord",
    "TenantResult",
    "TenantStatus",
    "TenantVisitor",
]
