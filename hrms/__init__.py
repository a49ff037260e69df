"""
Multi-Tenant HR/Payroll Platform

Database-per-tenant HRMS core: a tenant directory in the control-plane
database, a registry of lazily opened per-tenant connections, and
cross-tenant sweeps for platform-admin views.
"""

__version__ = "1.0.0"
