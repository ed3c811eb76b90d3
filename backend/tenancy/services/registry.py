"""
TenantRegistry - durable mapping from tenant identity and slug to schema name

The registry is the ``tenants`` table in the shared namespace. It answers
"which schema belongs to this tenant" and records new tenants on their first
provisioning.

Registration rules:
- Same identity already registered: return it (existing=True). Provisioning
  events may be redelivered, so this is not an error.
- Same slug registered under another identity: remap that row to the new
  identity and name (last writer wins on slug). The schema name is kept.
- Otherwise insert a new row with the schema name derived from the slug.

Concurrent registrations of the same tenant are resolved by the unique
constraints on id, slug and schema_name: the insert runs in its own
transaction and, if it loses the race, the registration is re-read from
committed state.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from tenancy.errors import RegistrationConflict
from tenancy.models.base import utcnow
from tenancy.models.tenant import Tenant
from tenancy.utils.naming import DEFAULT_SCHEMA_PREFIX, schema_name_for_slug

logger = logging.getLogger(__name__)

# Lookup/insert rounds before giving up on a registration race
MAX_REGISTRATION_ATTEMPTS = 2


@dataclass
class Registration:
    """
    Result of TenantRegistry.register().

    Attributes:
        tenant: The registry row (detached, safe to read after the call)
        schema_name: Schema holding the tenant's data
        existing: True if the identity or slug was already registered
        remapped: True if an existing row was moved to a new identity
    """

    tenant: Tenant
    schema_name: str
    existing: bool
    remapped: bool = False

    @property
    def created(self) -> bool:
        """True if this call inserted the registry row."""
        return not self.existing


class TenantRegistry:
    """
    Reads and writes the tenant registry.

    Args:
        connections: ConnectionManager (registry connections, schema DDL
                     for deactivate)
        schema_prefix: Prefix of derived schema names
    """

    def __init__(self, connections, schema_prefix: str = DEFAULT_SCHEMA_PREFIX):
        self.connections = connections
        self.schema_prefix = schema_prefix
        self.Session = sessionmaker(expire_on_commit=False)

    @contextmanager
    def _session(self, begin: bool = False) -> Generator[Session, None, None]:
        """
        ORM session on a registry connection from the ConnectionManager.

        Raises:
            DatabaseConnectionError: If the registry database is unreachable
        """
        with self.connections.connect() as conn:
            with self.Session(bind=conn) as session:
                if not begin:
                    yield session
                    return
                with session.begin():
                    yield session

    def register(self, identity: str, name: str, slug: str) -> Registration:
        """
        Register a tenant, or return its existing registration.

        Args:
            identity: External identity of the tenant
            name: Display name
            slug: URL-safe key the schema name is derived from

        Returns:
            Registration

        Raises:
            ValueError: If identity is empty or the slug yields no schema name
            RegistrationConflict: If the derived schema name belongs to a
                                  tenant with a different slug
            DatabaseConnectionError: If the registry database is unreachable
        """
        if not identity:
            raise ValueError("Tenant identity cannot be empty")

        schema_name = schema_name_for_slug(slug, self.schema_prefix)

        for attempt in range(1, MAX_REGISTRATION_ATTEMPTS + 1):
            registration = self._lookup(identity, name, slug)
            if registration is not None:
                return registration

            tenant = Tenant(
                id=identity,
                name=name,
                slug=slug,
                schema_name=schema_name,
                is_active=True,
            )
            try:
                with self._session(begin=True) as session:
                    session.add(tenant)
            except IntegrityError as e:
                owner = self._find_by_schema_name(schema_name)
                if owner is not None and owner.slug != slug:
                    logger.error(
                        f"Schema {schema_name} for slug '{slug}' already belongs to "
                        f"tenant {owner.id} (slug '{owner.slug}')"
                    )
                    raise RegistrationConflict(identity, slug, schema_name) from e

                logger.info(
                    f"Concurrent registration of tenant {identity} (attempt {attempt}), "
                    f"re-reading registry"
                )
                continue

            logger.info(f"Registered tenant {identity} ({name}) with schema {schema_name}")
            return Registration(tenant=tenant, schema_name=schema_name, existing=False)

        raise RegistrationConflict(identity, slug, schema_name)

    def _lookup(self, identity: str, name: str, slug: str) -> Optional[Registration]:
        """Resolve a registration by identity, then by slug (remapping)."""
        tenant = self.find_by_identity(identity)
        if tenant is not None:
            if tenant.slug != slug:
                logger.warning(
                    f"Tenant {identity} re-registered with slug '{slug}', keeping "
                    f"slug '{tenant.slug}' and schema {tenant.schema_name}"
                )
            logger.debug(f"Tenant {identity} already registered with schema {tenant.schema_name}")
            return Registration(tenant=tenant, schema_name=tenant.schema_name, existing=True)

        tenant = self.find_by_slug(slug)
        if tenant is None:
            return None

        previous_identity = tenant.id
        try:
            with self._session(begin=True) as session:
                result = session.execute(
                    update(Tenant)
                    .where(Tenant.id == previous_identity)
                    .values(id=identity, name=name, updated_at=utcnow())
                )
        except IntegrityError:
            # The new identity was registered concurrently
            return None

        if result.rowcount == 0:
            return None

        logger.warning(
            f"Slug '{slug}' remapped from tenant {previous_identity} to {identity} "
            f"(schema {tenant.schema_name} kept)"
        )
        tenant = self.find_by_identity(identity)
        if tenant is None:
            return None
        return Registration(
            tenant=tenant,
            schema_name=tenant.schema_name,
            existing=True,
            remapped=True,
        )

    def find_by_identity(self, identity: str) -> Optional[Tenant]:
        with self._session() as session:
            return session.get(Tenant, identity)

    def find_by_slug(self, slug: str) -> Optional[Tenant]:
        with self._session() as session:
            return session.scalars(select(Tenant).where(Tenant.slug == slug)).first()

    def _find_by_schema_name(self, schema_name: str) -> Optional[Tenant]:
        with self._session() as session:
            return session.scalars(select(Tenant).where(Tenant.schema_name == schema_name)).first()

    def list_all(self, active_only: bool = False) -> List[Tenant]:
        """
        Snapshot of the registered tenants, ordered by slug.

        Args:
            active_only: Skip tenants disabled with set_active(False)
        """
        query = select(Tenant).order_by(Tenant.slug)
        if active_only:
            query = query.where(Tenant.is_active.is_(True))

        with self._session() as session:
            return list(session.scalars(query))

    def update_name(self, identity: str, name: str) -> Optional[Tenant]:
        """
        Update the display name of a tenant.

        Returns:
            The updated tenant, or None if the identity is unknown
        """
        with self._session(begin=True) as session:
            tenant = session.get(Tenant, identity)
            if tenant is None:
                logger.warning(f"Cannot rename unknown tenant {identity}")
                return None
            tenant.name = name

        logger.info(f"Tenant {identity} renamed to {name}")
        return tenant

    def set_active(self, identity: str, active: bool) -> Optional[Tenant]:
        """
        Enable or disable a tenant without touching its schema.

        Returns:
            The updated tenant, or None if the identity is unknown
        """
        with self._session(begin=True) as session:
            tenant = session.get(Tenant, identity)
            if tenant is None:
                logger.warning(f"Cannot change status of unknown tenant {identity}")
                return None
            tenant.is_active = active

        logger.info(f"Tenant {identity} {'activated' if active else 'deactivated'}")
        return tenant

    def deactivate(self, schema_name: str) -> None:
        """
        Reverse a registration: drop the tenant schema and delete its row.

        This destroys tenant data. The provisioner only calls it for a
        registration created in the same provisioning call.

        Args:
            schema_name: Schema of the tenant to remove
        """
        logger.warning(f"Removing tenant schema {schema_name} and its registry row")
        self.connections.drop_schema(schema_name)

        with self._session(begin=True) as session:
            session.execute(delete(Tenant).where(Tenant.schema_name == schema_name))

        logger.info(f"Tenant with schema {schema_name} removed")

    def reset_all(self) -> List[str]:
        """
        Drop every tenant schema and empty the registry.

        Schemas are collected from the registry rows and from the database
        (schemas named with the tenant prefix), so orphaned schemas left by a
        crashed provisioning are dropped too.

        WARNING: Destroys all tenant data. Administrative use only.

        Returns:
            Sorted names of the dropped schemas
        """
        schemas = {tenant.schema_name for tenant in self.list_all()}
        schemas.update(self.connections.list_schemas(self.schema_prefix))

        for schema_name in sorted(schemas):
            self.connections.drop_schema(schema_name)

        with self._session(begin=True) as session:
            deleted = session.execute(delete(Tenant)).rowcount

        logger.warning(f"Registry reset: dropped {len(schemas)} schema(s), deleted {deleted} tenant row(s)")
        return sorted(schemas)
