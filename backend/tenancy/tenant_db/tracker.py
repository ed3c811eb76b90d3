"""
Per-schema bookkeeping of applied migration files.

Each tenant schema holds a ``_migrations`` table with one row per applied
file. A row means the file was fully applied; there is no in-progress state.
"""

import logging
from typing import Dict, List, Set

from sqlalchemy import select
from sqlalchemy.engine import Connection

from tenancy.tenant_db.tables import migrations_table

logger = logging.getLogger(__name__)


class MigrationTracker:
    """
    Reads and writes the tracking table of a tenant schema.

    All methods take the connection explicitly so that the caller controls
    transaction boundaries: record_applied() is meant to run in the same
    transaction as the migration it records.
    """

    def ensure_tracking_table(self, conn: Connection, schema_name: str) -> None:
        """Create the tracking table in the schema if it does not exist."""
        migrations_table(schema_name).create(conn, checkfirst=True)

    def applied_set(self, conn: Connection, schema_name: str) -> Set[str]:
        """
        Get the filenames already applied to a schema.

        Returns:
            Set of migration filenames
        """
        table = migrations_table(schema_name)
        return set(conn.scalars(select(table.c.filename)))

    def record_applied(self, conn: Connection, schema_name: str, filename: str) -> None:
        """Insert the tracking row for a migration file (filename is a bound parameter)."""
        table = migrations_table(schema_name)
        conn.execute(table.insert().values(filename=filename))
        logger.debug(f"Recorded migration {filename} as applied on {schema_name}")

    def history(self, conn: Connection, schema_name: str) -> List[Dict]:
        """
        Get the applied migrations of a schema in application order.

        Returns:
            List of dicts with filename and applied_at
        """
        table = migrations_table(schema_name)
        rows = conn.execute(
            select(table.c.filename, table.c.applied_at).order_by(table.c.id)
        )
        return [
            {
                "filename": row.filename,
                "applied_at": row.applied_at
            }
            for row in rows
        ]
