"""
Control-Plane Models

Only platform-wide tables live here. Tenant business records are
described by pydantic schemas (hrms.schemas.records) and bound to each
tenant's own database at runtime.
"""
from hrms.models.tenant import Tenant

__all__ = ["Tenant"]
