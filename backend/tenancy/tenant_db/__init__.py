"""
Tenant schema migrations.

SQL files in TENANT_MIGRATIONS_DIR are applied to every tenant schema in
filename order and recorded in the schema's ``_migrations`` table.
"""

from tenancy.tenant_db.migration_store import MigrationFile, MigrationFileStore
from tenancy.tenant_db.runner import MigrationRunner, MigrationRunResult
from tenancy.tenant_db.tracker import MigrationTracker

__all__ = [
    'MigrationFile',
    'MigrationFileStore',
    'MigrationRunner',
    'MigrationRunResult',
    'MigrationTracker',
]
