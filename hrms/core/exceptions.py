"""
Custom Exceptions

Two families live here:

- Tenancy errors raised by hrms.tenancy. They are plain exceptions so
  the core can be used outside a request; main.py maps them to HTTP
  responses.
- HTTP errors raised by the API layer. FastAPI converts these to
  responses directly.
"""
from typing import List, Optional

from fastapi import HTTPException, status


class TenancyError(Exception):
    """Base class for tenant resolution and data-access errors."""

    def __init__(self, message: str, tenant_id: Optional[str] = None):
        super().__init__(message)
        self.tenant_id = tenant_id


class ConfigurationError(TenancyError):
    """
    Tenant id is unknown, or its directory entry cannot be turned into
    a data-store location. Never retried automatically.
    """

    def __init__(self, tenant_id: str, reason: str = "tenant not found in directory"):
        super().__init__(f"Tenant {tenant_id!r} is not resolvable: {reason}", tenant_id)
        self.reason = reason


class TenantConnectionError(TenancyError, ConnectionError):
    """A tenant's data store is unreachable, rejected us, or timed out."""

    def __init__(self, tenant_id: str, reason: str):
        super().__init__(f"Tenant {tenant_id!r} data store unavailable: {reason}", tenant_id)
        self.reason = reason


class ModelConflictError(TenancyError):
    """
    The same model name was bound twice on one connection with schemas
    of different shape. This is a programming error.
    """

    def __init__(self, name: str, connection_id: str, tenant_id: Optional[str] = None):
        super().__init__(
            f"Model {name!r} is already bound on connection {connection_id} "
            f"with a different schema",
            tenant_id,
        )
        self.name = name
        self.connection_id = connection_id


class RecordNotFoundError(HTTPException):
    """Raised when a record cannot be found in any reachable tenant."""

    def __init__(self, record_id: str = ""):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Record not found: {record_id}" if record_id else "Record not found"
        )


class TenantsUnreachableError(HTTPException):
    """
    A cross-tenant lookup found nothing, but some tenants could not be
    searched, so the record may still exist.
    """

    def __init__(self, record_id: str, failed_tenant_ids: List[str]):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "message": f"Record not found in reachable tenants: {record_id}",
                "failed_tenants": failed_tenant_ids,
            },
        )


class AuthenticationError(HTTPException):
    """Raised when authentication fails."""

    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class PermissionDenied(HTTPException):
    """Raised when an authenticated caller lacks the required role."""

    def __init__(self, detail: str = "Permission denied"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )


class TenantIsolationError(HTTPException):
    """
    Raised when a tenant-scoped route runs without a resolved tenant.

    This is a CRITICAL security error and should be logged/alerted on.
    """

    def __init__(self, detail: str = "Tenant isolation violation"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )
