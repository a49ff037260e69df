"""
Tenant Directory

Read-only view of the control-plane tenant table, plus the rule that
turns a tenant record into the URL of its data-plane database.

The registry and the aggregator only depend on the TenantDirectory
protocol below. SqlTenantDirectory is the production implementation.
"""
import enum
import logging
from dataclasses import dataclass, field
from string import Formatter
from typing import Callable, List, Optional, Protocol, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from hrms.core.exceptions import ConfigurationError
from hrms.models.tenant import Tenant

logger = logging.getLogger(__name__)


class TenantStatus(str, enum.Enum):
    """Tenant lifecycle. Only ACTIVE tenants take part in sweeps."""
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


@dataclass(frozen=True)
class TenantRecord:
    """Immutable snapshot of one directory entry."""
    id: str
    code: Optional[str]
    name: str
    status: TenantStatus
    plan: str = "free"
    modules: Tuple[str, ...] = field(default_factory=tuple)
    database_name: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status is TenantStatus.ACTIVE

    @property
    def label(self) -> str:
        """Short name for log lines."""
        return self.code or self.id

    @classmethod
    def from_orm(cls, tenant: Tenant) -> "TenantRecord":
        return cls(
            id=tenant.id,
            code=tenant.code,
            name=tenant.name,
            status=TenantStatus(tenant.status),
            plan=tenant.plan or "free",
            modules=tuple(tenant.modules or ()),
            database_name=tenant.database_name,
        )


@dataclass(frozen=True)
class DirectoryStats:
    """Platform dashboard counters."""
    total: int
    active: int
    inactive: int
    active_modules: int


class TenantDirectory(Protocol):
    """What the tenancy core needs from the control plane."""

    async def get(self, identifier: str) -> Optional[TenantRecord]:
        ...

    async def list(self, status: Optional[TenantStatus] = None) -> List[TenantRecord]:
        ...


def database_name_for(record: TenantRecord) -> str:
    """Physical database name of a tenant: explicit override or company_<id>."""
    return record.database_name or f"company_{record.id}"


class TenantLocator:
    """
    Derives a tenant's database URL from a template such as
    "postgresql+asyncpg://db-host/{database}".

    The derivation is deterministic and never touches the network, so a
    bad template or an unusable record fails before any connection work.
    """

    def __init__(self, url_template: str):
        placeholders = {name for _, name, _, _ in Formatter().parse(url_template) if name}
        if placeholders != {"database"}:
            raise ValueError(
                f"Tenant URL template must contain exactly one {{database}} placeholder, "
                f"got {sorted(placeholders)}"
            )
        self.url_template = url_template

    def __call__(self, record: TenantRecord) -> str:
        if record.status is TenantStatus.DELETED:
            raise ConfigurationError(record.id, "tenant is deleted")
        if not record.id:
            raise ConfigurationError(record.label, "directory entry has no id")
        return self.url_template.format(database=database_name_for(record))


class SqlTenantDirectory:
    """
    TenantDirectory backed by the control-plane database.

    Queries are synchronous SQLAlchemy calls executed in Starlette's
    thread pool, so awaiting them never blocks the event loop.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    async def get(self, identifier: str) -> Optional[TenantRecord]:
        return await run_in_threadpool(self._get_sync, identifier)

    async def list(self, status: Optional[TenantStatus] = None) -> List[TenantRecord]:
        return await run_in_threadpool(self._list_sync, status)

    async def stats(self) -> DirectoryStats:
        return await run_in_threadpool(self._stats_sync)

    def _get_sync(self, identifier: str) -> Optional[TenantRecord]:
        if not identifier:
            return None
        db = self._session_factory()
        try:
            # Id first, then human code
            tenant = db.get(Tenant, identifier)
            if tenant is None:
                tenant = db.execute(
                    select(Tenant).where(Tenant.code == identifier)
                ).scalar_one_or_none()
            if tenant is None:
                logger.debug(f"Tenant not found in directory: {identifier}")
                return None
            return TenantRecord.from_orm(tenant)
        finally:
            db.close()

    def _list_sync(self, status: Optional[TenantStatus]) -> List[TenantRecord]:
        db = self._session_factory()
        try:
            query = select(Tenant)
            if status is not None:
                query = query.where(Tenant.status == status.value)
            # Code first, id as tie-breaker for tenants without a code
            query = query.order_by(Tenant.code, Tenant.id)
            tenants = db.execute(query).scalars().all()
            return [TenantRecord.from_orm(t) for t in tenants]
        finally:
            db.close()

    def _stats_sync(self) -> DirectoryStats:
        db = self._session_factory()
        try:
            total = db.execute(select(func.count()).select_from(Tenant)).scalar_one()
            active = db.execute(
                select(func.count()).select_from(Tenant).where(Tenant.status == TenantStatus.ACTIVE.value)
            ).scalar_one()
            modules = db.execute(select(Tenant.modules)).scalars().all()
            return DirectoryStats(
                total=total,
                active=active,
                inactive=total - active,
                active_modules=sum(len(m or ()) for m in modules),
            )
        finally:
            db.close()
