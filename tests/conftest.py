"""Shared fixtures: in-memory tenant directory and a spy connector."""
import asyncio
from typing import Dict, Iterable, List, Optional

import pytest

from hrms.tenancy import SchemaRegistrar, TenantConnectionRegistry, TenantLocator, TenantRecord, TenantStatus
from hrms.tenancy.directory import DirectoryStats


class FakeDirectory:
    """TenantDirectory over a fixed list of records."""

    def __init__(self, records: Iterable[TenantRecord]):
        self.records: Dict[str, TenantRecord] = {r.id: r for r in records}
        self.get_calls: List[str] = []

    async def get(self, identifier: str) -> Optional[TenantRecord]:
        self.get_calls.append(identifier)
        record = self.records.get(identifier)
        if record is None:
            record = next((r for r in self.records.values() if r.code == identifier), None)
        return record

    async def list(self, status: Optional[TenantStatus] = None) -> List[TenantRecord]:
        records = [r for r in self.records.values() if status is None or r.status is status]
        return sorted(records, key=lambda r: (r.code or "", r.id))

    async def stats(self) -> DirectoryStats:
        total = len(self.records)
        active = sum(1 for r in self.records.values() if r.is_active)
        return DirectoryStats(
            total=total,
            active=active,
            inactive=total - active,
            active_modules=sum(len(r.modules) for r in self.records.values()),
        )


class FakeEngine:
    def __init__(self, url: str):
        self.url = url


class SpyConnector:
    """
    Records every connect() call. Tenants listed in `failing` raise,
    `delays` adds latency per tenant id, and `gate` (an asyncio.Event)
    holds every connect until it is set.
    """

    def __init__(self, failing: Iterable[str] = (), delays: Optional[Dict[str, float]] = None):
        self.failing = set(failing)
        self.delays = delays or {}
        self.gate: Optional[asyncio.Event] = None
        self.connect_calls: List[str] = []
        self.disposed: List[FakeEngine] = []

    async def connect(self, tenant: TenantRecord, url: str) -> FakeEngine:
        self.connect_calls.append(tenant.id)
        if self.gate is not None:
            await self.gate.wait()
        if tenant.id in self.delays:
            await asyncio.sleep(self.delays[tenant.id])
        if tenant.id in self.failing:
            raise ConnectionRefusedError(f"connection refused for {url}")
        return FakeEngine(url)

    async def dispose(self, resource: FakeEngine) -> None:
        self.disposed.append(resource)


def make_tenant(tenant_id: str, code: str, status: TenantStatus = TenantStatus.ACTIVE, **kwargs) -> TenantRecord:
    return TenantRecord(id=tenant_id, code=code, name=f"{code} Ltd", status=status, **kwargs)


@pytest.fixture
def tenants():
    return [
        make_tenant("t-a", "A", modules=("hr", "payroll")),
        make_tenant("t-b", "B", modules=("hr",)),
        make_tenant("t-c", "C", status=TenantStatus.SUSPENDED),
    ]


@pytest.fixture
def directory(tenants):
    return FakeDirectory(tenants)


@pytest.fixture
def connector():
    return SpyConnector()


@pytest.fixture
def locator():
    return TenantLocator("postgresql+asyncpg://db.internal/{database}")


@pytest.fixture
def registry(directory, locator, connector):
    return TenantConnectionRegistry(
        directory=directory,
        locator=locator,
        connector=connector,
        registrar=SchemaRegistrar(),
        connect_timeout=1.0,
    )
