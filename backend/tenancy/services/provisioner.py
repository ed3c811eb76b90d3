"""
TenantProvisioner - make sure a tenant fully exists and is fully migrated

Provisioning is safe to call again for a tenant that already exists: it
re-registers (a no-op), re-creates the schema (IF NOT EXISTS) and applies
only the migrations that are still pending.

Flow:
1. Register the tenant (new, existing by identity, or remapped by slug)
2. CREATE SCHEMA IF NOT EXISTS
3. Apply pending migrations (MigrationRunner)
4. Seed the owner member when the caller provides one

If step 2-4 fails and step 1 inserted the registry row in this call, the
registration is reversed (schema dropped, row deleted) before the error is
re-raised, so a failed first provisioning leaves nothing behind and the
triggering event can be retried. Existing tenants are never rolled back.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from tenancy.errors import SchemaCreationError
from tenancy.utils.naming import slugify

logger = logging.getLogger(__name__)


@dataclass
class ProvisioningResult:
    """
    Outcome of TenantProvisioner.provision().

    Attributes:
        identity: Tenant identity
        schema_name: Tenant schema
        existing: True if the tenant was already registered before this call
        remapped: True if an existing slug was moved to this identity
        applied: Migration files applied during this call
        owner_created: True if an owner member row was inserted
    """

    identity: str
    schema_name: str
    existing: bool
    remapped: bool = False
    applied: List[str] = field(default_factory=list)
    owner_created: bool = False

    def to_dict(self) -> dict:
        return {
            'identity': self.identity,
            'schema_name': self.schema_name,
            'existing': self.existing,
            'remapped': self.remapped,
            'applied': list(self.applied),
            'owner_created': self.owner_created,
        }


class TenantProvisioner:
    """
    Orchestrates tenant registration, schema creation and migration.

    Args:
        registry: TenantRegistry
        connections: ConnectionManager
        runner: MigrationRunner
        members: MemberService used to seed the owner (optional)
    """

    def __init__(self, registry, connections, runner, members=None):
        self.registry = registry
        self.connections = connections
        self.runner = runner
        self.members = members

    def provision(
        self,
        identity: str,
        name: str,
        slug: Optional[str] = None,
        owner: Optional[Mapping[str, Any]] = None,
    ) -> ProvisioningResult:
        """
        Provision a tenant, or catch up an existing one.

        Args:
            identity: External identity of the tenant
            name: Display name
            slug: URL-safe key; derived from name when omitted
            owner: Creator details for owner seeding (see MemberService.ensure_owner)

        Returns:
            ProvisioningResult

        Raises:
            ValueError: If no slug can be derived
            RegistrationConflict: If the schema name belongs to another slug
            SchemaCreationError: If the schema cannot be created
            MigrationExecutionError: If a migration file fails
            DatabaseConnectionError: If the database is unreachable
        """
        slug = slug or slugify(name)
        if not slug:
            raise ValueError(f"Cannot derive a slug for tenant {identity} from name {name!r}")

        logger.info(f"Provisioning tenant {identity} ({name}, slug '{slug}')")
        registration = self.registry.register(identity, name, slug)
        schema_name = registration.schema_name

        result = ProvisioningResult(
            identity=identity,
            schema_name=schema_name,
            existing=registration.existing,
            remapped=registration.remapped,
        )

        try:
            self._create_schema(schema_name)
            run = self.runner.migrate_schema(schema_name, tenant_identity=identity)
            result.applied = run.applied

            if owner and self.members is not None:
                result.owner_created = self.members.ensure_owner(schema_name, owner)
        except Exception as e:
            logger.error(f"✗ Provisioning failed for tenant {identity} (schema {schema_name}): {e}")
            if registration.created:
                self._rollback(identity, schema_name)
            else:
                logger.warning(
                    f"Tenant {identity} existed before this call; "
                    f"schema {schema_name} left in place"
                )
            raise

        logger.info(
            f"✓ Tenant {identity} provisioned in schema {schema_name} "
            f"({'existing' if result.existing else 'new'}, {len(result.applied)} migration(s) applied)"
        )
        return result

    def provision_from_event(self, data: Mapping[str, Any]) -> ProvisioningResult:
        """
        Provision from the data of an organization.created event.

        Args:
            data: Validated event data with id, name and optional slug/owner
        """
        return self.provision(
            identity=data['id'],
            name=data['name'],
            slug=data.get('slug'),
            owner=data.get('owner'),
        )

    def _create_schema(self, schema_name: str) -> None:
        try:
            self.connections.create_schema(schema_name)
        except SQLAlchemyError as e:
            raise SchemaCreationError(schema_name, e) from e

    def _rollback(self, identity: str, schema_name: str) -> None:
        """Reverse a registration created in the failed call; the original error wins."""
        logger.warning(f"Rolling back new tenant {identity} (schema {schema_name})")
        try:
            self.registry.deactivate(schema_name)
        except Exception as rollback_error:
            logger.error(
                f"Rollback of tenant {identity} failed, schema {schema_name} "
                f"and its registry row may remain: {rollback_error}",
                exc_info=True
            )
