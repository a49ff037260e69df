"""
Activity Endpoints

Tenant-scoped activity log. The tenant's connection comes from
TenantMiddleware; the handler only binds the model and queries it.
"""
from fastapi import APIRouter, Depends, Query
from typing import List

from hrms.api.deps import get_tenant_connection, require_tenant_user
from hrms.schemas.records import ActivityRecord
from hrms.tenancy import ConnectionHandle

router = APIRouter(prefix="/activities", tags=["activities"])


@router.get("/recent", response_model=List[ActivityRecord])
async def recent_activities(
    limit: int = Query(10, ge=1, le=100),
    connection: ConnectionHandle = Depends(get_tenant_connection),
    _user=Depends(require_tenant_user),
):
    """Newest activities of the current tenant."""
    Activity = connection.model("Activity", ActivityRecord)
    return await Activity.find(order_by="time", descending=True, limit=limit)
