"""
Exception taxonomy for tenant provisioning and schema migrations.

Every error raised by the tenancy subsystem derives from TenancyError so
callers (webhook handler, operator scripts) can catch the whole family in one
place while still telling the failure modes apart:

- DatabaseConnectionError: database unreachable or pool exhausted
- RegistrationConflict: a registration the slug-remap path cannot resolve
- SchemaCreationError: CREATE SCHEMA failed (permissions, naming)
- MigrationExecutionError: one migration file's SQL failed
- TrackingInconsistencyError: a migration ran but its tracking row was not saved
- MigrationStoreError: migrations directory or file missing/unreadable
- TenantNotFoundError: operation on an unregistered tenant identity
"""

from typing import Optional


class TenancyError(Exception):
    """
    Base exception for the tenancy subsystem.

    Attributes:
        message: Human-readable error description
        original_error: Underlying exception (SQLAlchemy, OS) if any
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class DatabaseConnectionError(TenancyError):
    """Raised when a database connection cannot be obtained. Never retried internally."""


class MigrationStoreError(TenancyError):
    """Raised when the migration directory or a migration file cannot be read."""


class RegistrationConflict(TenancyError):
    """
    Raised when a tenant cannot be registered.

    Slug collisions between identities are resolved by remapping and never
    reach the caller; this is only raised when the derived schema name is
    already owned by a tenant with a different slug.
    """

    def __init__(self, identity: str, slug: str, schema_name: str) -> None:
        super().__init__(
            f"Cannot register tenant {identity}: schema {schema_name} "
            f"is already owned by a tenant with a different slug than '{slug}'"
        )
        self.identity = identity
        self.slug = slug
        self.schema_name = schema_name


class SchemaCreationError(TenancyError):
    """Raised when the physical schema for a tenant cannot be created."""

    def __init__(self, schema_name: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(f"Failed to create schema {schema_name}", original_error)
        self.schema_name = schema_name


class MigrationExecutionError(TenancyError):
    """
    Raised when a migration file fails to apply to a tenant schema.

    Files applied before the failing one stay applied and recorded.

    Attributes:
        schema_name: Target tenant schema
        filename: Migration file that failed
        tenant_identity: Tenant identity, when known
    """

    def __init__(
        self,
        schema_name: str,
        filename: str,
        tenant_identity: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        tenant = f" (tenant {tenant_identity})" if tenant_identity else ""
        super().__init__(
            f"Migration {filename} failed on schema {schema_name}{tenant}",
            original_error,
        )
        self.schema_name = schema_name
        self.filename = filename
        self.tenant_identity = tenant_identity


class TrackingInconsistencyError(MigrationExecutionError):
    """
    Raised when a migration executed but its tracking row could not be written.

    The schema already contains the migration's changes. Operators must verify
    the schema and insert the tracking row by hand; re-running the migration
    may be destructive.
    """

    def __init__(
        self,
        schema_name: str,
        filename: str,
        tenant_identity: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(schema_name, filename, tenant_identity, original_error)
        self.message = (
            f"Migration {filename} was applied to schema {schema_name} "
            f"but could not be recorded in the tracking table"
        )
        self.args = (self.message,)


class TenantNotFoundError(TenancyError):
    """Raised when an operation targets a tenant identity that is not registered."""

    def __init__(self, identity: str) -> None:
        super().__init__(f"Tenant {identity} is not registered")
        self.identity = identity
