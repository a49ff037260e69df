"""
API Dependencies

FastAPI dependencies that hand the process-wide tenancy objects to route
handlers. The registry and aggregator are built once in the app lifespan
and stored on app.state; nothing here creates them.
"""
from typing import Any, Dict
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from hrms.core.exceptions import AuthenticationError, PermissionDenied, TenantIsolationError
from hrms.core.security import decode_access_token, is_platform_admin, token_tenant
from hrms.tenancy import (
    ConnectionHandle,
    CrossTenantAggregator,
    TenantConnectionRegistry,
    TenantRecord,
)
from hrms.utils.logging import get_logger, log_security_event

logger = get_logger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer()


def get_registry(request: Request) -> TenantConnectionRegistry:
    return request.app.state.tenant_registry


def get_aggregator(request: Request) -> CrossTenantAggregator:
    return request.app.state.tenant_aggregator


def get_directory(request: Request):
    return request.app.state.tenant_directory


def get_current_tenant(request: Request) -> TenantRecord:
    """
    Tenant resolved by TenantMiddleware.

    CRITICAL: Tenant-scoped routes must never run without one.
    """
    tenant = getattr(request.state, "tenant", None)
    if tenant is None:
        log_security_event(
            "tenant_isolation_violation",
            {"path": request.url.path},
            logger,
        )
        raise TenantIsolationError("Tenant context not available")
    return tenant


def get_tenant_connection(
    request: Request,
    tenant: TenantRecord = Depends(get_current_tenant),
) -> ConnectionHandle:
    """The current tenant's connection handle."""
    connection = getattr(request.state, "tenant_connection", None)
    if connection is None or connection.tenant_id != tenant.id:
        log_security_event(
            "tenant_isolation_violation",
            {"path": request.url.path, "tenant_id": tenant.id},
            logger,
        )
        raise TenantIsolationError("Tenant connection does not match request tenant")
    return connection


async def get_token_payload(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Dict[str, Any]:
    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise AuthenticationError("Invalid or expired token")
    return payload


async def require_tenant_user(
    tenant: TenantRecord = Depends(get_current_tenant),
    payload: Dict[str, Any] = Depends(get_token_payload),
) -> Dict[str, Any]:
    """
    Token must belong to the request's tenant (by id or code).

    This prevents a valid token from one tenant being used for another.
    """
    claimed = token_tenant(payload)
    if claimed not in (tenant.id, tenant.code):
        log_security_event(
            "tenant_mismatch",
            {"tenant_id": tenant.id, "token_tenant": claimed, "user_id": payload.get("sub")},
            logger,
        )
        raise TenantIsolationError("Token tenant mismatch")
    return payload


async def require_platform_admin(
    request: Request,
    payload: Dict[str, Any] = Depends(get_token_payload),
) -> Dict[str, Any]:
    """Cross-tenant views are restricted to platform admins."""
    if not is_platform_admin(payload):
        log_security_event(
            "platform_access_denied",
            {"path": request.url.path, "user_id": payload.get("sub"), "role": payload.get("role")},
            logger,
        )
        raise PermissionDenied("Platform admin privileges required")
    return payload
