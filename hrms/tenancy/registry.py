"""
Tenant Connection Registry

Maps a tenant id to its live ConnectionHandle. One registry is built at
process start (see hrms.main) and shared by every request.

CONCURRENCY:
- Cache hits are plain dict lookups, no awaiting.
- Misses are coalesced per tenant: the first caller starts one
  provisioning task, every concurrent caller for the same tenant awaits
  that same task. N callers -> one connection attempt -> one handle
  (or one failure delivered to all N).
- There is no registry-wide lock. Provisioning tenant A never blocks a
  request for tenant B.
- The shared task is awaited through asyncio.shield, so a caller that
  gets cancelled does not cancel the attempt for everyone else.

All of this assumes a single event loop per registry, which is how
uvicorn runs the app.

Handles are never evicted. They live until close()/close_all().
"""
import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Type

from pydantic import BaseModel

from hrms.core.exceptions import ConfigurationError, TenantConnectionError
from hrms.tenancy.connection import ConnectionHandle, TenantConnector
from hrms.tenancy.directory import TenantDirectory, TenantLocator, TenantRecord
from hrms.tenancy.models import SchemaRegistrar

logger = logging.getLogger(__name__)


class TenantConnectionRegistry:
    """
    Lazily creates, caches and shares per-tenant connection handles.

    Args:
        directory: where tenant ids are resolved
        locator: TenantRecord -> database URL
        connector: opens/disposes the physical resource
        registrar: model binding cache shared with the handles
        connect_timeout: seconds allowed for one connection attempt
        default_models: name -> schema bound on every new handle
    """

    def __init__(
        self,
        directory: TenantDirectory,
        locator: TenantLocator,
        connector: TenantConnector,
        registrar: Optional[SchemaRegistrar] = None,
        connect_timeout: float = 10.0,
        default_models: Optional[Mapping[str, Type[BaseModel]]] = None,
    ):
        self.directory = directory
        self.locator = locator
        self.connector = connector
        self.registrar = registrar or SchemaRegistrar()
        self.connect_timeout = connect_timeout
        self.default_models = dict(default_models or {})

        self._handles: Dict[str, ConnectionHandle] = {}
        self._pending: Dict[str, asyncio.Task] = {}

    def __len__(self):
        return len(self._handles)

    def peek(self, tenant_id: str) -> Optional[ConnectionHandle]:
        """Ready handle for tenant_id if one is cached, without any I/O."""
        handle = self._handles.get(tenant_id)
        if handle is not None and handle.is_ready:
            return handle
        return None

    async def get(self, tenant_id: str) -> ConnectionHandle:
        """
        Return the tenant's Ready handle, provisioning it on first use.

        Raises:
            ConfigurationError: tenant unknown or its location cannot be derived
            TenantConnectionError: the data store could not be reached in time
        """
        handle = self.peek(tenant_id)
        if handle is not None:
            handle.touch()
            return handle

        task = self._pending.get(tenant_id)
        if task is None:
            task = asyncio.ensure_future(self._provision(tenant_id))
            self._pending[tenant_id] = task
            task.add_done_callback(lambda done, key=tenant_id: self._finish_pending(key, done))
        return await asyncio.shield(task)

    async def close(self, tenant_id: str) -> bool:
        """
        Administrative teardown: READY -> CLOSED and release the resource.

        Returns False if the tenant had no Ready handle. The next get()
        provisions a fresh handle.
        """
        handle = self.peek(tenant_id)
        if handle is None:
            return False

        del self._handles[tenant_id]
        dropped = self.registrar.discard(handle.connection_id)
        resource = handle.resource
        handle.mark_closed()
        try:
            await self.connector.dispose(resource)
        finally:
            logger.info(
                f"Closed tenant DB for {handle.tenant.label} ({dropped} bindings dropped)",
                extra={"tenant_id": tenant_id},
            )
        return True

    async def close_all(self) -> int:
        """Close every Ready handle. Used at shutdown."""
        closed = 0
        for tenant_id in list(self._handles):
            try:
                if await self.close(tenant_id):
                    closed += 1
            except Exception:
                logger.exception(f"Failed to dispose tenant DB {tenant_id}", extra={"tenant_id": tenant_id})
        return closed

    def snapshot(self) -> List[ConnectionHandle]:
        """Cached handles (any state), ordered by tenant label."""
        return sorted(self._handles.values(), key=lambda h: h.tenant.label)

    def _finish_pending(self, key: str, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        # Mark the outcome as retrieved even if every waiter was cancelled
        if not task.cancelled():
            task.exception()

    async def _provision(self, identifier: str) -> ConnectionHandle:
        record = await self.directory.get(identifier)
        if record is None:
            logger.warning(f"Unknown tenant requested: {identifier}")
            raise ConfigurationError(identifier)

        url = self.locator(record)

        if record.id != identifier:
            # Looked up by code: join the attempt keyed by the canonical id
            return await self.get(record.id)

        return await self._connect(record, url)

    async def _connect(self, record: TenantRecord, url: str) -> ConnectionHandle:
        handle = ConnectionHandle(record, url, self.registrar)
        handle.mark_connecting()
        self._handles[record.id] = handle

        try:
            resource = await asyncio.wait_for(
                self.connector.connect(record, url),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError as exc:
            self._drop_failed(handle, exc)
            raise TenantConnectionError(
                record.id, f"connection timed out after {self.connect_timeout}s"
            ) from exc
        except (TenantConnectionError, asyncio.CancelledError) as exc:
            self._drop_failed(handle, exc)
            raise
        except Exception as exc:
            self._drop_failed(handle, exc)
            raise TenantConnectionError(record.id, f"{type(exc).__name__}: {exc}") from exc

        handle.mark_ready(resource)
        try:
            for name, schema in self.default_models.items():
                handle.model(name, schema)
        except Exception as exc:
            self.registrar.discard(handle.connection_id)
            self._drop_failed(handle, exc)
            handle.resource = None
            await self.connector.dispose(resource)
            raise ConfigurationError(
                record.id, f"default model binding failed: {type(exc).__name__}: {exc}"
            ) from exc

        logger.info(
            f"Tenant DB prepared: {record.label} ({len(self._handles)} cached)",
            extra={"tenant_id": record.id},
        )
        return handle

    def _drop_failed(self, handle: ConnectionHandle, exc: BaseException) -> None:
        handle.mark_failed(exc)
        if self._handles.get(handle.tenant_id) is handle:
            del self._handles[handle.tenant_id]
        logger.error(
            f"Tenant DB connection failed for {handle.tenant.label}: {exc!r}",
            extra={"tenant_id": handle.tenant_id},
        )

