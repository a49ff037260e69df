"""
Model Registration

Binds named domain schemas (pydantic models) to a specific tenant
connection. The result, a ModelBinding, is a compiled SQLAlchemy table
plus async query helpers that always run on that tenant's engine.

Bindings are cached per (connection_id, model name):
- same name + same (or equally shaped) schema -> the identical binding
- same name + differently shaped schema -> ModelConflictError

Pure in-memory work, no I/O. The lock exists because FastAPI runs sync
dependencies in a thread pool.
"""
import logging
import re
import threading
import types
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Type, Union, get_args, get_origin

from pydantic import BaseModel
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    func,
    select,
)

from hrms.core.exceptions import ModelConflictError, TenantConnectionError
from hrms.tenancy.connection import ConnectionHandle

logger = logging.getLogger(__name__)

# Order matters: bool is an int, datetime is a date
_COLUMN_TYPES = (
    (bool, Boolean),
    (int, Integer),
    (float, Float),
    (Decimal, lambda: Numeric(18, 2)),
    (datetime, DateTime),
    (date, Date),
    (str, lambda: String(255)),
    (dict, JSON),
    (list, JSON),
)

Shape = Tuple[Tuple[str, str, bool], ...]


def schema_shape(schema: Type[BaseModel]) -> Shape:
    """Structural fingerprint: (field, annotation, required) per field, in order."""
    return tuple(
        (name, repr(info.annotation), info.is_required())
        for name, info in schema.model_fields.items()
    )


def table_name_for(model_name: str) -> str:
    """LeaveRequest -> leave_requests, Activity -> activities."""
    snake = re.sub(r"(?<!^)(?=[A-Z])", "_", model_name).lower()
    if re.search(r"[^aeiou]y$", snake):
        return snake[:-1] + "ies"
    if snake.endswith(("s", "x", "ch", "sh")):
        return snake + "es"
    return snake + "s"


def _unwrap_optional(annotation: Any) -> Tuple[Any, bool]:
    origin = get_origin(annotation)
    if origin is Union or origin is getattr(types, "UnionType", None):
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0], True
    return annotation, False


def _column_type(model_name: str, field_name: str, annotation: Any):
    base = get_origin(annotation) or annotation
    if isinstance(base, type):
        for python_type, column_type in _COLUMN_TYPES:
            if issubclass(base, python_type):
                return column_type()
    raise TypeError(f"{model_name}.{field_name}: unsupported field type {annotation!r}")


def compile_table(model_name: str, schema: Type[BaseModel], metadata: MetaData) -> Table:
    """Translate a pydantic schema into a Table. The 'id' field is the primary key."""
    if "id" not in schema.model_fields:
        raise TypeError(f"{model_name} schema must declare an 'id' field")

    columns = []
    for name, info in schema.model_fields.items():
        annotation, optional = _unwrap_optional(info.annotation)
        columns.append(Column(
            name,
            _column_type(model_name, name, annotation),
            primary_key=(name == "id"),
            nullable=(name != "id") and (optional or not info.is_required()),
        ))
    return Table(table_name_for(model_name), metadata, *columns)


class ModelBinding:
    """
    A schema compiled onto one tenant connection.

    Every query runs on the owning handle's engine; a binding can never
    reach another tenant's database.
    """

    def __init__(self, name: str, schema: Type[BaseModel], connection: ConnectionHandle):
        self.name = name
        self.schema = schema
        self.shape = schema_shape(schema)
        self.connection_id = connection.connection_id
        self.tenant_id = connection.tenant_id
        self.table = compile_table(name, schema, MetaData())
        self._connection = connection

    def __repr__(self):
        return f"<ModelBinding {self.name} tenant={self.tenant_id}>"

    @property
    def c(self):
        """Column collection, for building filter expressions."""
        return self.table.c

    async def create_table(self) -> None:
        """Create the backing table if it does not exist yet."""
        async with self._engine().begin() as conn:
            await conn.run_sync(self.table.metadata.create_all)

    async def find(
        self,
        *criteria,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[BaseModel]:
        query = select(self.table)
        if criteria:
            query = query.where(*criteria)
        if order_by is not None:
            column = self.table.c[order_by]
            query = query.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            query = query.limit(limit)

        async with self._engine().connect() as conn:
            result = await conn.execute(query)
            rows = result.mappings().all()
        return [self.schema.model_validate(dict(row)) for row in rows]

    async def get(self, record_id: Any) -> Optional[BaseModel]:
        rows = await self.find(self.table.c.id == record_id, limit=1)
        return rows[0] if rows else None

    async def count(self, *criteria) -> int:
        query = select(func.count()).select_from(self.table)
        if criteria:
            query = query.where(*criteria)
        async with self._engine().connect() as conn:
            result = await conn.execute(query)
            return result.scalar_one()

    async def insert(self, record: Union[BaseModel, Dict[str, Any]]) -> BaseModel:
        if not isinstance(record, self.schema):
            record = self.schema.model_validate(record)
        async with self._engine().begin() as conn:
            await conn.execute(self.table.insert().values(**record.model_dump()))
        return record

    def _engine(self):
        self._connection.touch()
        return self._connection.engine


class SchemaRegistrar:
    """In-memory map (connection_id, model name) -> ModelBinding."""

    def __init__(self):
        self._bindings: Dict[Tuple[str, str], ModelBinding] = {}
        self._lock = threading.Lock()

    def model(self, connection: ConnectionHandle, name: str, schema: Type[BaseModel]) -> ModelBinding:
        key = (connection.connection_id, name)
        with self._lock:
            binding = self._bindings.get(key)
            if binding is not None:
                if binding.schema is schema or binding.shape == schema_shape(schema):
                    return binding
                logger.error(
                    f"Model {name} re-registered with a different schema",
                    extra={"tenant_id": connection.tenant_id, "connection_id": connection.connection_id},
                )
                raise ModelConflictError(name, connection.connection_id, connection.tenant_id)

            if not connection.is_ready:
                raise TenantConnectionError(
                    connection.tenant_id,
                    f"cannot bind {name} on a {connection.state.value} connection",
                )

            binding = ModelBinding(name, schema, connection)
            self._bindings[key] = binding
            logger.debug(
                f"Bound model {name} -> {binding.table.name}",
                extra={"tenant_id": connection.tenant_id, "connection_id": connection.connection_id},
            )
            return binding

    def bindings_for(self, connection: ConnectionHandle) -> Dict[str, ModelBinding]:
        with self._lock:
            return {
                name: binding
                for (connection_id, name), binding in self._bindings.items()
                if connection_id == connection.connection_id
            }

    def discard(self, connection_id: str) -> int:
        """Drop every binding of a closed connection. Returns how many were dropped."""
        with self._lock:
            keys = [key for key in self._bindings if key[0] == connection_id]
            for key in keys:
                del self._bindings[key]
            return len(keys)
