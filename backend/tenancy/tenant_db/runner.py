"""
Applies pending migration files to one tenant schema.

This is the shared core of tenant provisioning and fleet migration:

1. Open a connection scoped to the schema and take a per-schema lock
2. Ensure the tracking table exists and read the applied set
3. pending = ordered migration files minus applied set (global order kept)
4. Apply each pending file in order, recording it in the same transaction;
   stop at the first failure

Migrations of a single schema are strictly serial. The applied set is read on
the same connection, under the same lock, as the writes that follow it.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Generator, Iterable, List, Optional

from sqlalchemy import func, inspect, select
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from tenancy.errors import MigrationExecutionError, TrackingInconsistencyError
from tenancy.tenant_db.migration_store import MigrationFileStore
from tenancy.tenant_db.tables import MIGRATIONS_TABLE_NAME
from tenancy.tenant_db.tracker import MigrationTracker

logger = logging.getLogger(__name__)

# Seconds between attempts to take the per-schema migration lock
LOCK_POLL_INTERVAL = 0.5


@dataclass
class MigrationRunResult:
    """
    Outcome of one migration run on a schema.

    Attributes:
        schema_name: Target schema
        pending: Files that were pending when the run started
        applied: Files executed and recorded during this run
        baselined: Baseline file recorded without execution (legacy bootstrap)
    """

    schema_name: str
    pending: List[str] = field(default_factory=list)
    applied: List[str] = field(default_factory=list)
    baselined: Optional[str] = None

    @property
    def up_to_date(self) -> bool:
        return not self.pending


class MigrationRunner:
    """
    Brings a tenant schema up to date with the migration file store.

    Args:
        connections: ConnectionManager providing schema-scoped connections
        store: MigrationFileStore with the shared migration files
        tracker: MigrationTracker (a new one if omitted)
        baseline_migration: Filename recorded by the legacy bootstrap
                            (first file of the store if None)
        baseline_tables: Tables whose presence marks a schema that predates
                         the tracking table
    """

    def __init__(
        self,
        connections,
        store: MigrationFileStore,
        tracker: Optional[MigrationTracker] = None,
        baseline_migration: Optional[str] = None,
        baseline_tables: Iterable[str] = (),
    ):
        self.connections = connections
        self.store = store
        self.tracker = tracker or MigrationTracker()
        self.baseline_migration = baseline_migration or None
        self.baseline_tables = tuple(baseline_tables)

    def migrate_schema(
        self,
        schema_name: str,
        tenant_identity: Optional[str] = None,
        dry_run: bool = False,
        bootstrap_legacy: bool = False,
    ) -> MigrationRunResult:
        """
        Apply every pending migration file to a schema.

        Args:
            schema_name: Tenant schema (must already exist)
            tenant_identity: Tenant identity, for error context and logs
            dry_run: Only compute the pending list; nothing is written
            bootstrap_legacy: Mark the baseline file applied without running it
                              when the schema has no tracking rows but already
                              contains the baseline tables

        Returns:
            MigrationRunResult

        Raises:
            DatabaseConnectionError: If no connection can be obtained
            MigrationExecutionError: If a file fails (earlier files stay applied)
            TrackingInconsistencyError: If a non-transactional file ran but
                                        could not be recorded
        """
        result = MigrationRunResult(schema_name=schema_name)

        with self.connections.connect(schema_name) as conn:
            with self._schema_lock(conn, schema_name):
                with conn.begin():
                    if dry_run and not self._has_tracking_table(conn, schema_name):
                        applied = set()
                    else:
                        self.tracker.ensure_tracking_table(conn, schema_name)
                        applied = self.tracker.applied_set(conn, schema_name)

                    if bootstrap_legacy and not applied:
                        result.baselined = self._bootstrap_legacy(
                            conn, schema_name, record=not dry_run
                        )
                        if result.baselined:
                            applied.add(result.baselined)

                result.pending = [
                    filename for filename in self.store.list_ordered()
                    if filename not in applied
                ]

                if not result.pending:
                    logger.info(f"Schema {schema_name} already up to date ({len(applied)} applied)")
                    return result

                if dry_run:
                    logger.info(
                        f"Schema {schema_name} would apply {len(result.pending)} migration(s): "
                        f"{', '.join(result.pending)}"
                    )
                    return result

                for filename in result.pending:
                    self._apply(conn, schema_name, filename, tenant_identity)
                    result.applied.append(filename)

        logger.info(f"Applied {len(result.applied)} migration(s) to {schema_name}")
        return result

    def history(self, schema_name: str) -> List[Dict]:
        """Applied migrations of a schema (empty if the tracking table is missing)."""
        with self.connections.connect(schema_name) as conn:
            with conn.begin():
                if not self._has_tracking_table(conn, schema_name):
                    return []
                return self.tracker.history(conn, schema_name)

    @staticmethod
    def _has_tracking_table(conn: Connection, schema_name: str) -> bool:
        return inspect(conn).has_table(MIGRATIONS_TABLE_NAME, schema=schema_name)

    @contextmanager
    def _schema_lock(self, conn: Connection, schema_name: str) -> Generator[None, None, None]:
        """
        Hold a PostgreSQL session advisory lock keyed by the schema name.

        Concurrent runs on the same schema (duplicate provisioning events,
        a fleet run racing a provisioning call) wait for each other. Other
        dialects have no advisory locks and run unlocked.
        """
        if conn.dialect.name != 'postgresql':
            yield
            return

        # Polled: a session blocked in pg_advisory_lock() holds a snapshot
        # that CREATE INDEX CONCURRENTLY in the lock holder waits on
        waited = False
        while True:
            with conn.begin():
                acquired = conn.execute(
                    select(func.pg_try_advisory_lock(func.hashtext(schema_name)))
                ).scalar()
            if acquired:
                break
            if not waited:
                logger.info(f"Waiting for another migration run on {schema_name}")
                waited = True
            time.sleep(LOCK_POLL_INTERVAL)

        try:
            yield
        finally:
            try:
                with conn.begin():
                    conn.execute(select(func.pg_advisory_unlock(func.hashtext(schema_name))))
            except SQLAlchemyError as e:
                # Closing the session releases the lock
                logger.warning(f"Could not release migration lock on {schema_name}: {e}")
                conn.invalidate()

    def _bootstrap_legacy(self, conn: Connection, schema_name: str, record: bool) -> Optional[str]:
        """
        Record the baseline migration for a schema that predates the tracker.

        Returns:
            The baseline filename if the schema was bootstrapped, else None
        """
        if not self.baseline_tables:
            return None

        inspector = inspect(conn)
        if not all(inspector.has_table(table, schema=schema_name) for table in self.baseline_tables):
            return None

        ordered = self.store.list_ordered()
        baseline = self.baseline_migration or (ordered[0] if ordered else None)
        if baseline is None or baseline not in ordered:
            logger.warning(
                f"Schema {schema_name} has legacy tables but baseline migration "
                f"{baseline!r} is not in the migration store; not bootstrapping"
            )
            return None

        logger.warning(
            f"Schema {schema_name} has legacy tables and no tracking rows: "
            f"marking {baseline} as applied without executing it"
        )
        if record:
            self.tracker.record_applied(conn, schema_name, baseline)
        return baseline

    @staticmethod
    def _execute(conn: Connection, sql: str) -> None:
        # no_parameters: the file is sent verbatim, no bind or % parsing
        conn.exec_driver_sql(sql, execution_options={'no_parameters': True})

    def _apply(
        self,
        conn: Connection,
        schema_name: str,
        filename: str,
        tenant_identity: Optional[str],
    ) -> None:
        """Execute one migration file and record it."""
        migration = self.store.load(filename, schema_name)
        logger.info(f"Applying migration {filename} to {schema_name}")

        if migration.transactional:
            try:
                with conn.begin():
                    self._execute(conn, migration.sql)
                    self.tracker.record_applied(conn, schema_name, filename)
            except SQLAlchemyError as e:
                logger.error(f"✗ Migration {filename} failed on {schema_name}: {e}")
                raise MigrationExecutionError(schema_name, filename, tenant_identity, e) from e

            logger.info(f"✓ Migration {filename} applied to {schema_name}")
            return

        default_isolation_level = conn.default_isolation_level
        conn.execution_options(isolation_level='AUTOCOMMIT')
        try:
            with conn.begin():
                self._execute(conn, migration.sql)
        except SQLAlchemyError as e:
            logger.error(f"✗ Migration {filename} failed on {schema_name}: {e}")
            raise MigrationExecutionError(schema_name, filename, tenant_identity, e) from e
        finally:
            conn.execution_options(isolation_level=default_isolation_level)

        try:
            with conn.begin():
                self.tracker.record_applied(conn, schema_name, filename)
        except SQLAlchemyError as e:
            logger.critical(
                f"Migration {filename} was applied to {schema_name} outside a transaction "
                f"but could not be recorded; insert the tracking row manually: {e}"
            )
            raise TrackingInconsistencyError(schema_name, filename, tenant_identity, e) from e

        logger.info(f"✓ Migration {filename} applied to {schema_name} (no transaction)")
