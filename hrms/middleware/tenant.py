"""
Tenant Middleware

Resolves the tenant of every tenant-scoped request and attaches its
connection handle, so route handlers never pick a database themselves.

Resolution order:
1. X-Tenant-ID header (tenant id)
2. X-Tenant-Code header (human code, e.g. "ACME")
3. Subdomain: acme.hrms.example.com -> "acme"

Platform-admin routes are cross-tenant and skip this middleware; they
go through CrossTenantAggregator instead.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from typing import Optional
import logging

from hrms.core.exceptions import ConfigurationError, TenantConnectionError

logger = logging.getLogger(__name__)


class TenantMiddleware(BaseHTTPMiddleware):
    """
    Middleware to resolve the tenant and its connection.

    Sets request.state.tenant (TenantRecord) and
    request.state.tenant_connection (ConnectionHandle).

    SECURITY: This is the first line of defense for tenant isolation.
    """

    def __init__(self, app):
        super().__init__(app)
        self.excluded_paths = [
            "/docs",
            "/redoc",
            "/openapi.json",
            "/health",
            "/api/v1/platform",
        ]

    async def dispatch(self, request: Request, call_next):
        """Process each request and inject tenant context."""

        path = request.url.path
        if path == "/" or any(path.startswith(p) for p in self.excluded_paths):
            return await call_next(request)

        tenant_identifier = self._extract_tenant_identifier(request)

        if not tenant_identifier:
            logger.warning(f"No tenant identifier in request: {request.url}")
            return JSONResponse(
                status_code=400,
                content={"detail": "Tenant identifier required (X-Tenant-ID, X-Tenant-Code or subdomain)"}
            )

        directory = request.app.state.tenant_directory
        registry = request.app.state.tenant_registry

        tenant = await directory.get(tenant_identifier)
        if tenant is None:
            logger.warning(f"Tenant not found: {tenant_identifier}")
            return JSONResponse(
                status_code=404,
                content={"detail": f"Tenant not found: {tenant_identifier}"}
            )

        if not tenant.is_active:
            logger.warning(
                f"Tenant with status {tenant.status.value} attempted access: {tenant_identifier}",
                extra={"tenant_id": tenant.id},
            )
            return JSONResponse(
                status_code=403,
                content={"detail": f"Tenant account is {tenant.status.value}"}
            )

        try:
            connection = await registry.get(tenant.id)
        except ConfigurationError as exc:
            return JSONResponse(status_code=404, content={"detail": str(exc)})
        except TenantConnectionError as exc:
            logger.error(f"Tenant store unavailable: {exc}", extra={"tenant_id": tenant.id})
            return JSONResponse(
                status_code=503,
                content={"detail": "Tenant data store unavailable", "type": "tenant_connection_error"}
            )

        request.state.tenant = tenant
        request.state.tenant_id = tenant.id
        request.state.tenant_connection = connection

        logger.debug(f"Request for tenant: {tenant.label} ({tenant.id})")

        return await call_next(request)

    def _extract_tenant_identifier(self, request: Request) -> Optional[str]:
        tenant_id = request.headers.get("X-Tenant-ID")
        if tenant_id:
            return tenant_id

        tenant_code = request.headers.get("X-Tenant-Code")
        if tenant_code:
            return tenant_code

        host = request.headers.get("Host", "")
        if host:
            # "acme.hrms.example.com" -> "acme"
            parts = host.split(":")[0].split(".")
            if len(parts) >= 3:
                subdomain = parts[0]
                if subdomain not in ["www", "api", "app"]:
                    return subdomain

        return None
