"""Tests for SchemaRegistrar and schema -> table compilation."""
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

import pytest
from pydantic import BaseModel
from sqlalchemy import JSON, Boolean, DateTime, Integer, MetaData, Numeric, String

from hrms.core.exceptions import ModelConflictError, TenantConnectionError
from hrms.tenancy import ConnectionHandle, SchemaRegistrar
from hrms.tenancy.models import compile_table, schema_shape, table_name_for

from tests.conftest import FakeEngine, make_tenant


class Employee(BaseModel):
    id: str
    name: str
    salary: Optional[Decimal] = None


class EmployeeCopy(BaseModel):
    id: str
    name: str
    salary: Optional[Decimal] = None


class EmployeeV2(BaseModel):
    id: str
    name: str
    grade: int


def ready_handle(registrar, tenant_id="t-a", code="A"):
    handle = ConnectionHandle(make_tenant(tenant_id, code), f"memory://{tenant_id}", registrar)
    handle.mark_connecting()
    handle.mark_ready(FakeEngine(handle.url))
    return handle


@pytest.fixture
def registrar():
    return SchemaRegistrar()


def test_same_schema_returns_identical_binding(registrar):
    handle = ready_handle(registrar)

    first = handle.model("Employee", Employee)
    second = handle.model("Employee", Employee)

    assert first is second
    assert first.tenant_id == "t-a"
    assert first.connection_id == handle.connection_id


def test_equally_shaped_schema_returns_existing_binding(registrar):
    handle = ready_handle(registrar)

    first = handle.model("Employee", Employee)

    assert handle.model("Employee", EmployeeCopy) is first


def test_different_shape_raises_model_conflict(registrar):
    handle = ready_handle(registrar)
    existing = handle.model("Employee", Employee)

    with pytest.raises(ModelConflictError) as exc_info:
        handle.model("Employee", EmployeeV2)

    assert exc_info.value.name == "Employee"
    assert exc_info.value.connection_id == handle.connection_id
    assert handle.models["Employee"] is existing


def test_bindings_are_scoped_to_their_connection(registrar):
    a = ready_handle(registrar, "t-a", "A")
    b = ready_handle(registrar, "t-b", "B")

    binding_a = a.model("Employee", Employee)
    binding_b = b.model("Employee", EmployeeV2)

    assert binding_a is not binding_b
    assert binding_b.tenant_id == "t-b"
    assert set(a.models) == {"Employee"}
    assert a.models["Employee"].schema is Employee
    assert b.models["Employee"].schema is EmployeeV2


def test_binding_on_connection_that_is_not_ready_fails(registrar):
    handle = ConnectionHandle(make_tenant("t-a", "A"), "memory://t-a", registrar)
    handle.mark_connecting()

    with pytest.raises(TenantConnectionError):
        handle.model("Employee", Employee)


def test_discard_drops_only_that_connection(registrar):
    a = ready_handle(registrar, "t-a", "A")
    b = ready_handle(registrar, "t-b", "B")
    a.model("Employee", Employee)
    a.model("Leave", EmployeeV2)
    b.model("Employee", Employee)

    assert registrar.discard(a.connection_id) == 2
    assert registrar.bindings_for(a) == {}
    assert set(registrar.bindings_for(b)) == {"Employee"}


def test_engine_of_closed_handle_is_unavailable(registrar):
    handle = ready_handle(registrar)
    handle.mark_closed()

    with pytest.raises(RuntimeError):
        handle.engine


def test_schema_shape_tracks_fields_types_and_required():
    assert schema_shape(Employee) == schema_shape(EmployeeCopy)
    assert schema_shape(Employee) != schema_shape(EmployeeV2)


@pytest.mark.parametrize("model_name, table_name", [
    ("Employee", "employees"),
    ("Activity", "activities"),
    ("LeaveRequest", "leave_requests"),
    ("PayrollBatch", "payroll_batches"),
    ("Holiday", "holidays"),
])
def test_table_name_for(model_name, table_name):
    assert table_name_for(model_name) == table_name


def test_compile_table_maps_field_types():
    class Payslip(BaseModel):
        id: int
        employee_id: str
        gross: Decimal
        paid: bool = False
        issued_at: Optional[datetime] = None
        lines: List[Dict[str, str]] = []

    table = compile_table("Payslip", Payslip, MetaData())

    assert table.name == "payslips"
    assert table.c.id.primary_key
    assert isinstance(table.c.id.type, Integer)
    assert isinstance(table.c.employee_id.type, String)
    assert not table.c.employee_id.nullable
    assert isinstance(table.c.gross.type, Numeric)
    assert isinstance(table.c.paid.type, Boolean)
    assert isinstance(table.c.issued_at.type, DateTime)
    assert table.c.issued_at.nullable
    assert isinstance(table.c.lines.type, JSON)


def test_compile_table_requires_id_field():
    class Note(BaseModel):
        body: str

    with pytest.raises(TypeError):
        compile_table("Note", Note, MetaData())
