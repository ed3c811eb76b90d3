"""
Registry models.

Only the tenant registry lives in the shared namespace; tenant data tables
are described in tenancy.tenant_db.tables.
"""

from tenancy.models.base import BaseModel
from tenancy.models.tenant import Tenant

__all__ = ['BaseModel', 'Tenant']
