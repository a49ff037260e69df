"""
Tenant Connection Handles

A ConnectionHandle is the long-lived link to one tenant's database.
It is created by TenantConnectionRegistry, shared by every request for
that tenant, and never shared across tenants.

State machine:

    UNINITIALIZED -> CONNECTING -> READY -> CLOSED
                          |
                          +-> ERROR  (handle dropped, next get() starts over)
"""
import enum
import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, Type

from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from hrms.tenancy.directory import TenantRecord

if TYPE_CHECKING:
    from hrms.tenancy.models import ModelBinding, SchemaRegistrar

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


class TenantConnector(Protocol):
    """Opens and releases the physical resource behind a handle."""

    async def connect(self, tenant: TenantRecord, url: str) -> Any:
        ...

    async def dispose(self, resource: Any) -> None:
        ...


class SqlAlchemyConnector:
    """
    Default connector: one AsyncEngine (with its own pool) per tenant.

    The engine is verified with SELECT 1 before it is handed out, so an
    unreachable server or bad credentials fail here and not on the first
    business query.
    """

    def __init__(self, pool_size: int = 5, echo: bool = False):
        self.pool_size = pool_size
        self.echo = echo

    def _engine_options(self, url: str) -> Dict[str, Any]:
        if url.startswith("sqlite"):
            return {}
        return {
            "pool_size": self.pool_size,
            "max_overflow": self.pool_size * 2,
            "pool_pre_ping": True,
        }

    async def connect(self, tenant: TenantRecord, url: str) -> AsyncEngine:
        engine = create_async_engine(url, echo=self.echo, **self._engine_options(url))
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            logger.debug(f"Verified data store for tenant {tenant.label}", extra={"tenant_id": tenant.id})
        except BaseException:
            await engine.dispose()
            raise
        return engine

    async def dispose(self, resource: AsyncEngine) -> None:
        await resource.dispose()


class ConnectionHandle:
    """
    Live, reusable access point into one tenant's data store.

    Holds the connector's resource (an AsyncEngine by default), the
    compiled model bindings for this connection, a state tag and the
    last-used timestamp. No request owns a handle.
    """

    def __init__(self, tenant: TenantRecord, url: str, registrar: "SchemaRegistrar"):
        self.connection_id = uuid.uuid4().hex
        self.tenant = tenant
        self.url = url
        self.state = ConnectionState.UNINITIALIZED
        self.resource: Any = None
        self.error: Optional[BaseException] = None
        self.created_at = datetime.utcnow()
        self.last_used_at = self.created_at
        self._registrar = registrar

    def __repr__(self):
        return f"<ConnectionHandle {self.tenant.label} {self.state.value}>"

    @property
    def tenant_id(self) -> str:
        return self.tenant.id

    @property
    def is_ready(self) -> bool:
        return self.state is ConnectionState.READY

    @property
    def engine(self) -> AsyncEngine:
        """The tenant's AsyncEngine. Only valid once the handle is READY."""
        if not self.is_ready:
            raise RuntimeError(f"Connection for tenant {self.tenant.label} is {self.state.value}")
        return self.resource

    @property
    def models(self) -> Dict[str, "ModelBinding"]:
        """Bindings compiled on this connection, keyed by model name."""
        return self._registrar.bindings_for(self)

    def model(self, name: str, schema: Type[BaseModel]) -> "ModelBinding":
        """Bind (or fetch the existing binding of) a named schema on this connection."""
        return self._registrar.model(self, name, schema)

    def touch(self) -> None:
        self.last_used_at = datetime.utcnow()

    def mark_connecting(self) -> None:
        self.state = ConnectionState.CONNECTING

    def mark_ready(self, resource: Any) -> None:
        self.resource = resource
        self.state = ConnectionState.READY
        self.touch()

    def mark_failed(self, error: BaseException) -> None:
        self.error = error
        self.state = ConnectionState.ERROR

    def mark_closed(self) -> None:
        self.resource = None
        self.state = ConnectionState.CLOSED
