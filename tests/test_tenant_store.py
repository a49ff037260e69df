"""
End-to-end tests against real per-tenant SQLite databases (aiosqlite):
model bindings, isolation between tenant stores, and the platform
sweeps running on top of them.
"""
from datetime import datetime, timedelta

import pytest

from hrms.core.exceptions import TenantConnectionError
from hrms.schemas.records import TENANT_MODELS, ActivityRecord, EmployeeRecord
from hrms.services.platform import ActivityFeedVisitor, EmployeeDirectoryVisitor, EmployeeLookup
from hrms.tenancy import (
    CrossTenantAggregator,
    SqlAlchemyConnector,
    TenantConnectionRegistry,
    TenantLocator,
)

from tests.conftest import FakeDirectory, make_tenant

T0 = datetime(2024, 1, 1, 9, 0, 0)


@pytest.fixture
def tenant_registry(tmp_path):
    directory = FakeDirectory([
        make_tenant("t-a", "A"),
        make_tenant("t-b", "B"),
        # Database file lives in a directory that does not exist
        make_tenant("t-x", "X", database_name="missing/company_x"),
    ])
    return TenantConnectionRegistry(
        directory,
        TenantLocator(f"sqlite+aiosqlite:///{tmp_path.as_posix()}/{{database}}.db"),
        SqlAlchemyConnector(),
        connect_timeout=5.0,
        default_models=TENANT_MODELS,
    )


async def seed(registry, tenant_id, employees=(), activities=()):
    connection = await registry.get(tenant_id)
    Employee = connection.model("Employee", EmployeeRecord)
    Activity = connection.model("Activity", ActivityRecord)
    await Employee.create_table()
    await Activity.create_table()
    for employee in employees:
        await Employee.insert(employee)
    for activity in activities:
        await Activity.insert(activity)
    return connection


@pytest.mark.asyncio
async def test_binding_reads_and_writes_its_own_tenant_store(tenant_registry):
    try:
        a = await seed(tenant_registry, "t-a", employees=[
            EmployeeRecord(id="e1", first_name="Ada", last_name="Lovelace", created_at=T0),
        ])
        b = await seed(tenant_registry, "t-b")

        Employee = a.model("Employee", EmployeeRecord)
        assert await Employee.count() == 1
        found = await Employee.get("e1")
        assert found.full_name == "Ada Lovelace"

        assert await b.model("Employee", EmployeeRecord).count() == 0
        assert await b.model("Employee", EmployeeRecord).get("e1") is None
    finally:
        await tenant_registry.close_all()


@pytest.mark.asyncio
async def test_find_filters_orders_and_limits(tenant_registry):
    try:
        connection = await seed(tenant_registry, "t-a", employees=[
            EmployeeRecord(id=f"e{i}", department="Ops" if i % 2 else "HR", created_at=T0 + timedelta(days=i))
            for i in range(5)
        ])
        Employee = connection.model("Employee", EmployeeRecord)

        newest = await Employee.find(order_by="created_at", descending=True, limit=2)
        ops = await Employee.find(Employee.c.department == "Ops", order_by="created_at")

        assert [e.id for e in newest] == ["e4", "e3"]
        assert [e.id for e in ops] == ["e1", "e3"]
        assert await Employee.count(Employee.c.department == "HR") == 3
    finally:
        await tenant_registry.close_all()


@pytest.mark.asyncio
async def test_unreachable_store_raises_connection_error(tenant_registry):
    with pytest.raises(TenantConnectionError):
        await tenant_registry.get("t-x")
    assert tenant_registry.peek("t-x") is None


@pytest.mark.asyncio
async def test_employee_sweep_across_real_stores(tenant_registry):
    try:
        await seed(tenant_registry, "t-a", employees=[
            EmployeeRecord(id="a-old", created_at=T0),
            EmployeeRecord(id="a-new", created_at=T0 + timedelta(days=3)),
        ])
        await seed(tenant_registry, "t-b", employees=[
            EmployeeRecord(id="b-mid", created_at=T0 + timedelta(days=1)),
        ])
        aggregator = CrossTenantAggregator(tenant_registry, query_timeout=5.0)

        report = await aggregator.for_each_active_tenant(EmployeeDirectoryVisitor())

        assert [r.item.id for r in report.results] == ["a-new", "b-mid", "a-old"]
        assert [r.tenant_code for r in report.results] == ["A", "B", "A"]
        assert report.failed_tenant_ids == ["t-x"]
        assert report.failures[0].error_type == "TenantConnectionError"
    finally:
        await tenant_registry.close_all()


@pytest.mark.asyncio
async def test_activity_feed_caps_per_tenant_and_overall(tenant_registry):
    try:
        await seed(tenant_registry, "t-a", activities=[
            ActivityRecord(id=f"a{i}", action="Employee created", time=T0 + timedelta(minutes=2 * i))
            for i in range(4)
        ])
        await seed(tenant_registry, "t-b", activities=[
            ActivityRecord(id=f"b{i}", action="Payroll run posted", time=T0 + timedelta(minutes=2 * i + 1))
            for i in range(4)
        ])
        aggregator = CrossTenantAggregator(tenant_registry, query_timeout=5.0)

        report = await aggregator.for_each_active_tenant(ActivityFeedVisitor(per_tenant=2, limit=3))

        assert [r.item.id for r in report.results] == ["b3", "a3", "b2"]
    finally:
        await tenant_registry.close_all()


@pytest.mark.asyncio
async def test_employee_lookup_finds_the_owning_tenant(tenant_registry):
    try:
        await seed(tenant_registry, "t-a")
        await seed(tenant_registry, "t-b", employees=[EmployeeRecord(id="needle", first_name="Grace")])
        aggregator = CrossTenantAggregator(tenant_registry, query_timeout=5.0)

        result = await aggregator.find_across_tenants(EmployeeLookup("needle"))

        assert result.tenant_id == "t-b"
        assert result.item.first_name == "Grace"
        assert await aggregator.find_across_tenants(EmployeeLookup("missing")) is None
    finally:
        await tenant_registry.close_all()
