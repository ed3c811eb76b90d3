"""
Flask extensions initialization.

Extensions are initialized here and then imported in the application factory.
This prevents circular imports and allows for proper configuration.

Besides Flask-SQLAlchemy and Flask-Migrate (which manage the registry table),
this module wires the tenancy services: one explicitly constructed
TenancyServices container per application, built from the app config.
"""

import logging
from typing import Any, Mapping, Optional

from flask import current_app
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

logger = logging.getLogger(__name__)

# Initialize extensions
# These will be initialized with the Flask app in the application factory
db = SQLAlchemy()
migrate = Migrate()


class TenancyServices:
    """
    Container holding the tenancy services of one process.

    Built once (per app or per operator script) and passed around explicitly;
    there is no module-level connection state.

    Attributes:
        connections: ConnectionManager
        store: MigrationFileStore
        tracker: MigrationTracker
        runner: MigrationRunner
        registry: TenantRegistry
        members: MemberService
        provisioner: TenantProvisioner
        fleet: FleetMigrator
    """

    def __init__(self, connections, store, tracker, runner, registry, members, provisioner, fleet):
        self.connections = connections
        self.store = store
        self.tracker = tracker
        self.runner = runner
        self.registry = registry
        self.members = members
        self.provisioner = provisioner
        self.fleet = fleet

    @classmethod
    def from_config(cls, config: Mapping[str, Any], connections=None) -> 'TenancyServices':
        """
        Build every service from a Flask config (or any mapping with the same keys).

        Args:
            config: Configuration mapping (see tenancy.config.Config)
            connections: Existing ConnectionManager to use instead of building one

        Raises:
            MigrationStoreError: If TENANT_MIGRATIONS_DIR is missing or unreadable
        """
        # Imported here: the services import the models, which import db from this module
        from tenancy.services.fleet_migrator import FleetMigrator
        from tenancy.services.member_service import MemberService
        from tenancy.services.provisioner import TenantProvisioner
        from tenancy.services.registry import TenantRegistry
        from tenancy.tenant_db.migration_store import DEFAULT_PLACEHOLDER, MigrationFileStore
        from tenancy.tenant_db.runner import MigrationRunner
        from tenancy.tenant_db.tracker import MigrationTracker
        from tenancy.utils.database import ConnectionManager
        from tenancy.utils.naming import DEFAULT_SCHEMA_PREFIX

        if connections is None:
            connections = ConnectionManager.from_config(config)

        store = MigrationFileStore(
            config['TENANT_MIGRATIONS_DIR'],
            placeholder=config.get('TENANT_SCHEMA_PLACEHOLDER', DEFAULT_PLACEHOLDER),
        )
        tracker = MigrationTracker()
        runner = MigrationRunner(
            connections,
            store,
            tracker,
            baseline_migration=config.get('TENANT_BASELINE_MIGRATION'),
            baseline_tables=config.get('TENANT_BASELINE_TABLES', ()),
        )
        registry = TenantRegistry(
            connections,
            schema_prefix=config.get('TENANT_SCHEMA_PREFIX', DEFAULT_SCHEMA_PREFIX),
        )
        members = MemberService(connections)
        provisioner = TenantProvisioner(registry, connections, runner, members)
        fleet = FleetMigrator(
            registry,
            connections,
            runner,
            max_workers=config.get('FLEET_MAX_WORKERS', 4),
        )

        return cls(connections, store, tracker, runner, registry, members, provisioner, fleet)

    def close(self) -> None:
        """Release every database connection held by the services."""
        self.connections.close_all()


class TenancyExtension:
    """Flask extension exposing a TenancyServices container per application."""

    def __init__(self, app=None):
        if app is not None:
            self.init_app(app)

    def init_app(self, app, services: Optional[TenancyServices] = None) -> TenancyServices:
        """
        Attach tenancy services to the app.

        Args:
            app: Flask application instance
            services: Prebuilt container (tests); built from app.config if None
        """
        if services is None:
            services = TenancyServices.from_config(app.config)

        app.extensions['tenancy'] = services
        logger.info(f"Tenancy services initialized (migrations: {services.store.directory})")
        return services


tenancy = TenancyExtension()


def get_tenancy() -> TenancyServices:
    """Get the TenancyServices of the current Flask application."""
    return current_app.extensions['tenancy']
