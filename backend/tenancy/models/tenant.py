"""
Tenant Model

One row per provisioned tenant in the registry table, which lives in the
shared namespace of the database. Each tenant's data lives in its own
PostgreSQL schema (e.g. ``tenant_acme_corp``) named after the slug.

Key features:
- The primary key is the tenant's identity in the upstream identity provider
- slug and schema_name are unique; schema_name never changes once assigned
- Soft disable support (is_active flag)
"""

from sqlalchemy import Boolean, Index, String

from tenancy.extensions import db
from tenancy.models.base import BaseModel


class Tenant(BaseModel, db.Model):
    """
    Registry entry mapping an external identity to a tenant schema.

    Attributes:
        id (str): External identity (e.g. the identity provider's organization id)
        name (str): Human-readable tenant name
        slug (str): URL-safe key, unique, the source of schema_name
        schema_name (str): PostgreSQL schema holding the tenant's data
        is_active (bool): False once the organization was deleted upstream

    Inherited from BaseModel:
        created_at (datetime): Creation timestamp (UTC)
        updated_at (datetime): Last update timestamp (UTC)
    """

    __tablename__ = 'tenants'

    id = db.Column(String(255), primary_key=True)
    name = db.Column(String(255), nullable=False)
    slug = db.Column(String(255), unique=True, nullable=False)
    schema_name = db.Column(String(63), unique=True, nullable=False)
    is_active = db.Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index('ix_tenants_is_active', 'is_active'),
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} slug={self.slug} schema={self.schema_name}>"
