"""
Read-only store of the SQL migration files shared by all tenant schemas.

Migration files live in one directory and are applied in lexicographic order
of their filename (use a zero-padded numeric prefix: 0000_, 0001_, ...).
Published filenames must never be renamed or reordered: the tracking table
records filenames, not content.

Each file contains the placeholder token (default ``$TENANT_SCHEMA$``) where
the tenant schema name goes. The token is replaced by plain text substitution
before execution.

A file whose first line is ``-- migrate:no-transaction`` is executed outside a
transaction (needed for statements such as CREATE INDEX CONCURRENTLY).
"""

import logging
import os
from dataclasses import dataclass
from typing import List

from tenancy.errors import MigrationStoreError

logger = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER = '$TENANT_SCHEMA$'
NO_TRANSACTION_MARKER = '-- migrate:no-transaction'


@dataclass(frozen=True)
class MigrationFile:
    """A migration file with the schema placeholder already substituted."""

    filename: str
    sql: str
    transactional: bool = True


class MigrationFileStore:
    """
    Exposes the ordered migration filenames and their substituted contents.

    Args:
        directory: Directory containing the *.sql migration files
        placeholder: Token replaced with the schema name in file contents

    Raises:
        MigrationStoreError: If the directory does not exist, or it or one of
                            its migration files is unreadable
    """

    def __init__(self, directory: str, placeholder: str = DEFAULT_PLACEHOLDER):
        if not placeholder:
            raise ValueError("Schema placeholder token cannot be empty")

        self.directory = os.path.abspath(directory)
        self.placeholder = placeholder

        if not os.path.isdir(self.directory):
            raise MigrationStoreError(f"Tenant migrations directory not found: {self.directory}")
        if not os.access(self.directory, os.R_OK | os.X_OK):
            raise MigrationStoreError(f"Tenant migrations directory is not readable: {self.directory}")

        unreadable = [
            name for name in self.list_ordered()
            if not os.access(os.path.join(self.directory, name), os.R_OK)
        ]
        if unreadable:
            raise MigrationStoreError(
                f"Tenant migration file(s) not readable in {self.directory}: {', '.join(unreadable)}"
            )

        logger.info(
            f"Tenant migration store at {self.directory} "
            f"({len(self.list_ordered())} migration file(s))"
        )

    def list_ordered(self) -> List[str]:
        """
        List migration filenames sorted ascending.

        The directory is read on every call so newly published files are
        picked up by long-running processes.

        Returns:
            Sorted list of *.sql filenames
        """
        try:
            entries = os.listdir(self.directory)
        except OSError as e:
            raise MigrationStoreError(f"Cannot list tenant migrations in {self.directory}", e) from e

        return sorted(
            name for name in entries
            if name.endswith('.sql') and os.path.isfile(os.path.join(self.directory, name))
        )

    def _read(self, filename: str) -> str:
        if os.path.basename(filename) != filename:
            raise MigrationStoreError(f"Invalid migration filename: {filename}")

        path = os.path.join(self.directory, filename)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except OSError as e:
            raise MigrationStoreError(f"Cannot read tenant migration {path}", e) from e

    def contents_for(self, filename: str, schema_name: str) -> str:
        """
        Read a migration file and substitute the schema name.

        Args:
            filename: Migration filename as returned by list_ordered()
            schema_name: Tenant schema name to substitute

        Returns:
            SQL text ready to execute
        """
        return self._read(filename).replace(self.placeholder, schema_name)

    def load(self, filename: str, schema_name: str) -> MigrationFile:
        """
        Read a migration file for execution on a schema.

        Returns:
            MigrationFile with substituted SQL and its transaction mode
        """
        sql = self.contents_for(filename, schema_name)
        first_line = sql.lstrip().split('\n', 1)[0].strip().lower()
        return MigrationFile(
            filename=filename,
            sql=sql,
            transactional=first_line != NO_TRANSACTION_MARKER,
        )
