"""
Cross-Tenant Aggregator

Batch reads over every active tenant for platform-admin views.

A sweep:
1. snapshots the active tenants from the directory
2. visits each tenant (bounded concurrency), getting its connection
   from the registry and running the visitor under a per-tenant timeout
   (connecting has its own, separate timeout inside the registry)
3. turns every tenant into an explicit outcome, success or failure
4. merges successful results in directory order, then stably sorts
   them by the visitor's key

One tenant failing never aborts the sweep. Even when every tenant
fails the caller gets a report, not an exception.
"""
import abc
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Generic, List, Optional, Sequence, TypeVar, Union

from hrms.tenancy.connection import ConnectionHandle
from hrms.tenancy.directory import TenantDirectory, TenantRecord, TenantStatus
from hrms.tenancy.registry import TenantConnectionRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TenantVisitor(abc.ABC, Generic[T]):
    """
    Read executed once per tenant during a sweep.

    Subclasses declare how the merged output is ordered: sort_key() on
    each item, plus `descending`. `limit` trims the merged list.
    """
    descending: bool = False
    limit: Optional[int] = None

    @abc.abstractmethod
    async def fetch(self, tenant: TenantRecord, connection: ConnectionHandle) -> Sequence[T]:
        ...

    @abc.abstractmethod
    def sort_key(self, item: T) -> Any:
        ...


class TenantLookup(abc.ABC, Generic[T]):
    """Point lookup: return the record if this tenant has it, else None."""

    @abc.abstractmethod
    async def find(self, tenant: TenantRecord, connection: ConnectionHandle) -> Optional[T]:
        ...


@dataclass(frozen=True)
class TenantResult(Generic[T]):
    """One item tagged with the tenant it came from."""
    tenant_id: str
    tenant_code: Optional[str]
    tenant_name: str
    item: T

    @classmethod
    def tag(cls, tenant: TenantRecord, item: T) -> "TenantResult[T]":
        return cls(tenant_id=tenant.id, tenant_code=tenant.code, tenant_name=tenant.name, item=item)


@dataclass(frozen=True)
class TenantSuccess(Generic[T]):
    tenant: TenantRecord
    items: List[T]


@dataclass(frozen=True)
class TenantFailure:
    tenant_id: str
    tenant_code: Optional[str]
    reason: str
    error_type: str

    @classmethod
    def from_error(cls, tenant: TenantRecord, error: BaseException) -> "TenantFailure":
        return cls(
            tenant_id=tenant.id,
            tenant_code=tenant.code,
            reason=str(error) or type(error).__name__,
            error_type=type(error).__name__,
        )


TenantOutcome = Union[TenantSuccess, TenantFailure]


@dataclass
class AggregationReport(Generic[T]):
    """Merged results of a sweep plus the tenants that could not be read."""
    results: List[TenantResult[T]] = field(default_factory=list)
    failures: List[TenantFailure] = field(default_factory=list)
    tenants_visited: int = 0

    @property
    def failed_tenant_ids(self) -> List[str]:
        return [f.tenant_id for f in self.failures]

    @property
    def is_partial(self) -> bool:
        return bool(self.failures)

    @property
    def items(self) -> List[T]:
        return [r.item for r in self.results]


@dataclass
class LookupReport(Generic[T]):
    """First match of a point lookup plus the tenants skipped on the way."""
    match: Optional[TenantResult[T]] = None
    failures: List[TenantFailure] = field(default_factory=list)
    tenants_visited: int = 0

    @property
    def failed_tenant_ids(self) -> List[str]:
        return [f.tenant_id for f in self.failures]

    @property
    def is_partial(self) -> bool:
        return bool(self.failures)


class SweepDeadlineExceeded(Exception):
    """Recorded for tenants still running when the sweep deadline hits."""


class TenantQueryTimeout(Exception):
    """The per-tenant query deadline of the aggregator expired."""


class CrossTenantAggregator:
    """
    Runs visitors across all active tenants through one shared registry.

    Args:
        registry: connection registry shared with request handlers
        directory: tenant snapshot source, defaults to the registry's
        concurrency: max tenants queried at the same time
        query_timeout: seconds allowed per tenant query
        sweep_timeout: seconds allowed for the whole sweep
    """

    def __init__(
        self,
        registry: TenantConnectionRegistry,
        directory: Optional[TenantDirectory] = None,
        concurrency: int = 8,
        query_timeout: float = 15.0,
        sweep_timeout: Optional[float] = 60.0,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.registry = registry
        self.directory = directory or registry.directory
        self.concurrency = concurrency
        self.query_timeout = query_timeout
        self.sweep_timeout = sweep_timeout

    async def for_each_active_tenant(self, visitor: TenantVisitor[T]) -> AggregationReport[T]:
        tenants = await self.directory.list(TenantStatus.ACTIVE)
        report: AggregationReport[T] = AggregationReport(tenants_visited=len(tenants))
        if not tenants:
            return report

        semaphore = asyncio.Semaphore(self.concurrency)
        tasks = [
            asyncio.ensure_future(self._visit_bounded(semaphore, tenant, visitor))
            for tenant in tenants
        ]
        done, pending = await asyncio.wait(tasks, timeout=self.sweep_timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        # Directory order, independent of which tenant answered first
        for tenant, task in zip(tenants, tasks):
            if task in done:
                outcome = task.result()
            else:
                outcome = TenantFailure.from_error(
                    tenant, SweepDeadlineExceeded(f"sweep deadline of {self.sweep_timeout}s exceeded")
                )

            if isinstance(outcome, TenantFailure):
                report.failures.append(outcome)
            else:
                report.results.extend(TenantResult.tag(tenant, item) for item in outcome.items)

        report.results.sort(key=lambda r: visitor.sort_key(r.item), reverse=visitor.descending)
        if visitor.limit is not None:
            del report.results[visitor.limit:]

        if report.failures:
            logger.warning(
                f"Cross-tenant sweep {type(visitor).__name__}: "
                f"{len(report.failures)}/{len(tenants)} tenants failed "
                f"({', '.join(f.tenant_code or f.tenant_id for f in report.failures)})"
            )
        else:
            logger.info(f"Cross-tenant sweep {type(visitor).__name__}: {len(tenants)} tenants, {len(report.results)} results")
        return report

    async def find_across_tenants(self, lookup: TenantLookup[T]) -> Optional[TenantResult[T]]:
        """
        Visit active tenants one at a time, in directory order, and return
        the first match. Failing tenants are logged and skipped.
        """
        report = await self.lookup_across_tenants(lookup)
        return report.match

    async def lookup_across_tenants(self, lookup: TenantLookup[T]) -> LookupReport[T]:
        """
        Same walk as find_across_tenants, but also reports the tenants that
        were skipped, so "not found" can be told apart from "not reachable".
        """
        tenants = await self.directory.list(TenantStatus.ACTIVE)
        report: LookupReport[T] = LookupReport()
        for tenant in tenants:
            report.tenants_visited += 1
            try:
                item = await self._lookup(tenant, lookup)
            except Exception as exc:
                logger.warning(
                    f"Lookup {type(lookup).__name__} skipped tenant {tenant.label}: {exc!r}",
                    extra={"tenant_id": tenant.id},
                )
                report.failures.append(self._failure(tenant, exc))
                continue
            if item is not None:
                report.match = TenantResult.tag(tenant, item)
                break
        return report

    async def _visit_bounded(
        self,
        semaphore: asyncio.Semaphore,
        tenant: TenantRecord,
        visitor: TenantVisitor[T],
    ) -> TenantOutcome:
        async with semaphore:
            try:
                items = await self._visit(tenant, visitor)
            except Exception as exc:
                logger.warning(
                    f"Tenant {tenant.label} failed during sweep: {exc!r}",
                    extra={"tenant_id": tenant.id},
                )
                return self._failure(tenant, exc)
            return TenantSuccess(tenant=tenant, items=list(items))

    def _failure(self, tenant: TenantRecord, error: Exception) -> TenantFailure:
        if isinstance(error, TenantQueryTimeout):
            return TenantFailure(
                tenant_id=tenant.id,
                tenant_code=tenant.code,
                reason=str(error),
                error_type="TimeoutError",
            )
        return TenantFailure.from_error(tenant, error)

    async def _visit(self, tenant: TenantRecord, visitor: TenantVisitor[T]) -> Sequence[T]:
        # Connecting is bounded by the registry's own timeout
        connection = await self.registry.get(tenant.id)
        return await self._within_query_timeout(visitor.fetch(tenant, connection))

    async def _lookup(self, tenant: TenantRecord, lookup: TenantLookup[T]) -> Optional[T]:
        connection = await self.registry.get(tenant.id)
        return await self._within_query_timeout(lookup.find(tenant, connection))

    async def _within_query_timeout(self, coro: Awaitable[T]) -> T:
        # asyncio.wait rather than wait_for: a TimeoutError raised by the
        # query itself must not be mistaken for our deadline
        task = asyncio.ensure_future(coro)
        try:
            done, _ = await asyncio.wait({task}, timeout=self.query_timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if not done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise TenantQueryTimeout(f"tenant query timed out after {self.query_timeout}s")
        return task.result()
