"""
FleetMigrator - bring every registered tenant schema up to date

Used after new files are added to the tenant migration directory. For each
registered tenant the schema is ensured and its pending migrations are
applied with the same MigrationRunner the provisioner uses.

Per-tenant isolation: a failing tenant is logged and reported, and the run
continues with the other tenants. The report as a whole fails if any tenant
failed.

Tenants are processed by a bounded thread pool. Migrations of one tenant
always run in order on a single worker. A cancel event stops the run between
tenants: tenants not yet started are reported as skipped.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from tenancy.errors import MigrationExecutionError, SchemaCreationError, TenantNotFoundError
from tenancy.models.tenant import Tenant

logger = logging.getLogger(__name__)


class TenantStatus(str, Enum):
    """Outcome of one tenant in a fleet run."""

    MIGRATED = 'migrated'
    UP_TO_DATE = 'up_to_date'
    WOULD_MIGRATE = 'would_migrate'
    FAILED = 'failed'
    SKIPPED = 'skipped'


@dataclass
class TenantOutcome:
    """Result of migrating one tenant."""

    identity: str
    name: str
    schema_name: str
    status: TenantStatus
    applied: List[str] = field(default_factory=list)
    pending: List[str] = field(default_factory=list)
    baselined: Optional[str] = None
    failed_filename: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'identity': self.identity,
            'name': self.name,
            'schema_name': self.schema_name,
            'status': self.status.value,
            'applied': list(self.applied),
            'pending': list(self.pending),
            'baselined': self.baselined,
            'failed_filename': self.failed_filename,
            'error': self.error,
        }


@dataclass
class FleetReport:
    """Per-tenant outcomes of a fleet run, in registry order."""

    outcomes: List[TenantOutcome] = field(default_factory=list)
    dry_run: bool = False
    cancelled: bool = False

    @property
    def failed(self) -> List[TenantOutcome]:
        return [o for o in self.outcomes if o.status is TenantStatus.FAILED]

    @property
    def succeeded(self) -> bool:
        """True when no tenant failed (skipped tenants do not count as failures)."""
        return not self.failed

    def count(self, status: TenantStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    def to_dict(self) -> Dict:
        return {
            'dry_run': self.dry_run,
            'cancelled': self.cancelled,
            'succeeded': self.succeeded,
            'tenants': [o.to_dict() for o in self.outcomes],
        }


class FleetMigrator:
    """
    Applies pending tenant migrations across the fleet.

    Args:
        registry: TenantRegistry listing the tenants
        connections: ConnectionManager (schema creation)
        runner: MigrationRunner
        max_workers: Default number of tenants migrated in parallel
        bootstrap_legacy: Baseline schemas that predate the tracking table
    """

    def __init__(self, registry, connections, runner, max_workers: int = 4, bootstrap_legacy: bool = True):
        self.registry = registry
        self.connections = connections
        self.runner = runner
        self.max_workers = max(1, int(max_workers))
        self.bootstrap_legacy = bootstrap_legacy

    def _select_tenants(self, tenant_identity: Optional[str]) -> List[Tenant]:
        if tenant_identity:
            tenant = self.registry.find_by_identity(tenant_identity)
            if tenant is None:
                raise TenantNotFoundError(tenant_identity)
            return [tenant]
        return self.registry.list_all()

    def run(
        self,
        dry_run: bool = False,
        tenant_identity: Optional[str] = None,
        max_workers: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> FleetReport:
        """
        Migrate every registered tenant (or a single one).

        Args:
            dry_run: Report pending migrations without applying them
            tenant_identity: Restrict the run to this tenant
            max_workers: Parallel tenants (defaults to the configured value)
            cancel_event: When set, tenants not yet started are skipped

        Returns:
            FleetReport

        Raises:
            TenantNotFoundError: If tenant_identity is not registered
            DatabaseConnectionError: If the registry cannot be read
        """
        tenants = self._select_tenants(tenant_identity)
        cancel_event = cancel_event or threading.Event()
        report = FleetReport(dry_run=dry_run)

        if not tenants:
            logger.info("No tenants registered, nothing to migrate")
            return report

        workers = max(1, min(max_workers or self.max_workers, len(tenants)))
        logger.info(
            f"Fleet migration of {len(tenants)} tenant(s) with {workers} worker(s)"
            f"{' (dry run)' if dry_run else ''}"
        )

        if workers == 1:
            report.outcomes = [self._migrate_tenant(t, dry_run, cancel_event) for t in tenants]
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='fleet-migrate') as pool:
                futures = [pool.submit(self._migrate_tenant, t, dry_run, cancel_event) for t in tenants]
                report.outcomes = [future.result() for future in futures]

        report.cancelled = cancel_event.is_set()
        logger.info(
            f"Fleet migration finished: {report.count(TenantStatus.MIGRATED)} migrated, "
            f"{report.count(TenantStatus.UP_TO_DATE)} up to date, "
            f"{report.count(TenantStatus.WOULD_MIGRATE)} would migrate, "
            f"{report.count(TenantStatus.SKIPPED)} skipped, "
            f"{len(report.failed)} failed"
        )
        return report

    def _migrate_tenant(self, tenant: Tenant, dry_run: bool, cancel_event: threading.Event) -> TenantOutcome:
        """Migrate one tenant; never raises, failures become a FAILED outcome."""
        outcome = TenantOutcome(
            identity=tenant.id,
            name=tenant.name,
            schema_name=tenant.schema_name,
            status=TenantStatus.SKIPPED,
        )

        if cancel_event.is_set():
            logger.info(f"  - {tenant.name} skipped (run cancelled)")
            return outcome

        try:
            if not dry_run:
                try:
                    self.connections.create_schema(tenant.schema_name)
                except SQLAlchemyError as e:
                    raise SchemaCreationError(tenant.schema_name, e) from e

            run = self.runner.migrate_schema(
                tenant.schema_name,
                tenant_identity=tenant.id,
                dry_run=dry_run,
                bootstrap_legacy=self.bootstrap_legacy,
            )
        except MigrationExecutionError as e:
            outcome.status = TenantStatus.FAILED
            outcome.failed_filename = e.filename
            outcome.error = str(e)
            logger.error(f"  ✗ {tenant.name} ({tenant.schema_name}) failed at {e.filename}: {e}")
            return outcome
        except Exception as e:
            outcome.status = TenantStatus.FAILED
            outcome.error = str(e)
            logger.error(f"  ✗ {tenant.name} ({tenant.schema_name}) migration failed: {e}", exc_info=True)
            return outcome

        outcome.pending = run.pending
        outcome.applied = run.applied
        outcome.baselined = run.baselined

        if run.up_to_date:
            outcome.status = TenantStatus.UP_TO_DATE
            logger.info(f"  ✓ {tenant.name} already up to date")
        elif dry_run:
            outcome.status = TenantStatus.WOULD_MIGRATE
            logger.info(f"  → {tenant.name} would apply {len(run.pending)} migration(s)")
        else:
            outcome.status = TenantStatus.MIGRATED
            logger.info(f"  ✓ {tenant.name} migrated ({len(run.applied)} migration(s) applied)")

        return outcome

    def history(self, tenant_identity: Optional[str] = None) -> Dict[str, List[Dict]]:
        """
        Applied migrations per tenant.

        Returns:
            Dict mapping tenant identity to its migration history
        """
        return {
            tenant.id: self.runner.history(tenant.schema_name)
            for tenant in self._select_tenants(tenant_identity)
        }
