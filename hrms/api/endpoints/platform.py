"""
Platform Admin Endpoints

Cross-tenant views for platform admins (role "psa"). Nothing here is
scoped to a single tenant: reads fan out over every active tenant via
CrossTenantAggregator and come back with the list of tenants that could
not be reached.

Also exposes the registry's connection cache for operators, including
the explicit, admin-triggered teardown of one tenant's connection.
"""
from fastapi import APIRouter, Depends, Query, status

from hrms.api.deps import get_aggregator, get_directory, get_registry, require_platform_admin
from hrms.config import get_settings
from hrms.core.exceptions import RecordNotFoundError, TenantsUnreachableError
from hrms.schemas.platform import (
    ActivityFeedResponse,
    ConnectionInfo,
    ConnectionListResponse,
    EmployeeSweepResponse,
    FailedTenant,
    PlatformStatsResponse,
    TenantActivity,
    TenantEmployee,
    TenantInfo,
)
from hrms.services.platform import ActivityFeedVisitor, EmployeeDirectoryVisitor, EmployeeLookup
from hrms.tenancy import CrossTenantAggregator, TenantConnectionRegistry, TenantResult
from hrms.utils.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(
    prefix="/platform",
    tags=["platform"],
    dependencies=[Depends(require_platform_admin)],
)


def _tenant_info(result: TenantResult) -> TenantInfo:
    return TenantInfo(id=result.tenant_id, code=result.tenant_code, name=result.tenant_name)


@router.get("/employees", response_model=EmployeeSweepResponse)
async def list_all_employees(
    aggregator: CrossTenantAggregator = Depends(get_aggregator),
):
    """
    Every employee of every active tenant, newest first.

    Unreachable tenants are listed in failed_tenants; the rest of the
    data is still returned.
    """
    report = await aggregator.for_each_active_tenant(EmployeeDirectoryVisitor())

    employees = [
        TenantEmployee(**result.item.model_dump(), tenant=_tenant_info(result))
        for result in report.results
    ]
    return EmployeeSweepResponse(
        employees=employees,
        total=len(employees),
        tenants_visited=report.tenants_visited,
        failed_tenants=[FailedTenant.model_validate(f) for f in report.failures],
        partial=report.is_partial,
    )


@router.get("/employees/{employee_id}", response_model=TenantEmployee)
async def get_employee_anywhere(
    employee_id: str,
    aggregator: CrossTenantAggregator = Depends(get_aggregator),
):
    """
    Find one employee by id in whichever tenant holds it.

    404 only when every active tenant was searched; if some could not be
    reached the answer is 503 with their ids.
    """
    report = await aggregator.lookup_across_tenants(EmployeeLookup(employee_id))
    result = report.match
    if result is None:
        if report.is_partial:
            raise TenantsUnreachableError(employee_id, report.failed_tenant_ids)
        raise RecordNotFoundError(employee_id)
    return TenantEmployee(**result.item.model_dump(), tenant=_tenant_info(result))


@router.get("/activities", response_model=ActivityFeedResponse)
async def list_all_activities(
    limit: int = Query(settings.ACTIVITY_FEED_LIMIT, ge=1, le=500),
    aggregator: CrossTenantAggregator = Depends(get_aggregator),
):
    """Platform-wide activity feed, newest first."""
    visitor = ActivityFeedVisitor(per_tenant=settings.ACTIVITY_FEED_PER_TENANT, limit=limit)
    report = await aggregator.for_each_active_tenant(visitor)

    return ActivityFeedResponse(
        activities=[
            TenantActivity(**result.item.model_dump(), tenant=_tenant_info(result))
            for result in report.results
        ],
        tenants_visited=report.tenants_visited,
        failed_tenants=[FailedTenant.model_validate(f) for f in report.failures],
        partial=report.is_partial,
    )


@router.get("/stats", response_model=PlatformStatsResponse)
async def platform_stats(
    directory=Depends(get_directory),
    registry: TenantConnectionRegistry = Depends(get_registry),
):
    """Dashboard counters from the tenant directory."""
    stats = await directory.stats()
    return PlatformStatsResponse(
        companies=stats.total,
        active_tenants=stats.active,
        inactive_tenants=stats.inactive,
        active_modules=stats.active_modules,
        open_connections=len(registry),
    )


@router.get("/connections", response_model=ConnectionListResponse)
async def list_connections(
    registry: TenantConnectionRegistry = Depends(get_registry),
):
    """Cached tenant connections and the models bound on each."""
    connections = [
        ConnectionInfo(
            tenant_id=handle.tenant_id,
            tenant_code=handle.tenant.code,
            state=handle.state.value,
            connection_id=handle.connection_id,
            models=sorted(handle.models),
            created_at=handle.created_at,
            last_used_at=handle.last_used_at,
        )
        for handle in registry.snapshot()
    ]
    return ConnectionListResponse(connections=connections, total=len(connections))


@router.delete("/connections/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_connection(
    tenant_id: str,
    registry: TenantConnectionRegistry = Depends(get_registry),
):
    """
    Tear down one tenant's cached connection.

    The next request for that tenant opens a fresh one.
    """
    if not await registry.close(tenant_id):
        raise RecordNotFoundError(f"connection for tenant {tenant_id}")
    logger.info(f"Connection closed by platform admin: {tenant_id}", extra={"tenant_id": tenant_id})
