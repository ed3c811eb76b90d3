"""
Unit Tests for MigrationRunner

Most tests run real migrations against an attached SQLite database standing
in for a tenant schema. The PostgreSQL advisory lock is checked with a mocked
connection.

Covers:
- Pending computation and ordered application
- Stop at first failure, earlier files stay recorded
- Dry-run
- Legacy schema bootstrap
- Non-transactional files and tracking inconsistencies
"""

from unittest.mock import MagicMock, Mock, patch

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

from tenancy.errors import MigrationExecutionError, TrackingInconsistencyError
from tenancy.tenant_db.migration_store import MigrationFileStore
from tenancy.tenant_db.runner import MigrationRunner
from tenancy.tenant_db.tracker import MigrationTracker

SCHEMA = 'tenant_acme'


def _table_sql(table):
    return f'CREATE TABLE "$TENANT_SCHEMA$".{table} (id INTEGER PRIMARY KEY)'


@pytest.fixture
def runner(connections, migrations_dir):
    store = MigrationFileStore(str(migrations_dir))
    return MigrationRunner(connections, store, baseline_tables=('users',))


@pytest.fixture
def schema(connections):
    connections.create_schema(SCHEMA)
    return SCHEMA


def _has_table(connections, table):
    with connections.connect(SCHEMA) as conn:
        with conn.begin():
            return inspect(conn).has_table(table, schema=SCHEMA)


def _applied(runner):
    return [entry['filename'] for entry in runner.history(SCHEMA)]


class TestMigrateSchema:
    """Tests for MigrationRunner.migrate_schema"""

    def test_applies_all_files_in_order(self, connections, runner, schema, write_migration):
        """Test a fresh schema gets every file, recorded in filename order"""
        write_migration('0001_b.sql', _table_sql('b'))
        write_migration('0000_a.sql', _table_sql('a'))

        result = runner.migrate_schema(schema)

        assert result.pending == ['0000_a.sql', '0001_b.sql']
        assert result.applied == ['0000_a.sql', '0001_b.sql']
        assert _applied(runner) == ['0000_a.sql', '0001_b.sql']
        assert _has_table(connections, 'a')
        assert _has_table(connections, 'b')

    def test_second_run_is_noop(self, runner, schema, write_migration):
        """Test re-running applies nothing"""
        write_migration('0000_a.sql', _table_sql('a'))
        runner.migrate_schema(schema)

        result = runner.migrate_schema(schema)

        assert result.up_to_date
        assert result.applied == []
        assert _applied(runner) == ['0000_a.sql']

    def test_only_new_files_applied(self, runner, schema, write_migration):
        """Test files added after a run are the only ones applied next time"""
        write_migration('0000_a.sql', _table_sql('a'))
        runner.migrate_schema(schema)
        write_migration('0001_b.sql', _table_sql('b'))

        result = runner.migrate_schema(schema)

        assert result.applied == ['0001_b.sql']

    def test_late_file_sorting_before_applied_is_applied(self, runner, schema, write_migration):
        """Test a file inserted before already-applied files is still applied"""
        write_migration('0000_a.sql', _table_sql('a'))
        write_migration('0002_c.sql', _table_sql('c'))
        runner.migrate_schema(schema)
        write_migration('0001_b.sql', _table_sql('b'))

        result = runner.migrate_schema(schema)

        assert result.applied == ['0001_b.sql']
        assert set(_applied(runner)) == {'0000_a.sql', '0001_b.sql', '0002_c.sql'}

    def test_failure_stops_run(self, connections, runner, schema, write_migration):
        """Test a failing file stops the run and earlier files stay applied"""
        write_migration('0000_a.sql', _table_sql('a'))
        write_migration('0001_broken.sql', 'CREATE TABLE "$TENANT_SCHEMA$".broken (')
        write_migration('0002_c.sql', _table_sql('c'))

        with pytest.raises(MigrationExecutionError) as exc_info:
            runner.migrate_schema(schema, tenant_identity='org_1')

        error = exc_info.value
        assert error.schema_name == SCHEMA
        assert error.filename == '0001_broken.sql'
        assert error.tenant_identity == 'org_1'
        assert error.original_error is not None
        assert _applied(runner) == ['0000_a.sql']
        assert not _has_table(connections, 'c')

    def test_failed_file_retried_on_next_run(self, runner, schema, write_migration):
        """Test a fixed file is applied by the next run"""
        write_migration('0000_a.sql', _table_sql('a'))
        write_migration('0001_b.sql', 'CREATE TABLE "$TENANT_SCHEMA$".b (')
        with pytest.raises(MigrationExecutionError):
            runner.migrate_schema(schema)

        write_migration('0001_b.sql', _table_sql('b'))
        result = runner.migrate_schema(schema)

        assert result.applied == ['0001_b.sql']

    def test_empty_store(self, runner, schema):
        """Test a schema is up to date when there are no files"""
        result = runner.migrate_schema(schema)

        assert result.up_to_date
        assert result.pending == []


class TestDryRun:
    """Tests for dry-run mode"""

    def test_dry_run_on_fresh_schema_writes_nothing(self, connections, runner, schema, write_migration):
        """Test dry-run reports every file and does not create the tracking table"""
        write_migration('0000_a.sql', _table_sql('a'))
        write_migration('0001_b.sql', _table_sql('b'))

        result = runner.migrate_schema(schema, dry_run=True)

        assert result.pending == ['0000_a.sql', '0001_b.sql']
        assert result.applied == []
        assert not _has_table(connections, '_migrations')
        assert not _has_table(connections, 'a')

    def test_dry_run_reports_only_pending(self, connections, runner, schema, write_migration):
        """Test dry-run after a run lists just the new files"""
        write_migration('0000_a.sql', _table_sql('a'))
        runner.migrate_schema(schema)
        write_migration('0001_b.sql', _table_sql('b'))

        result = runner.migrate_schema(schema, dry_run=True)

        assert result.pending == ['0001_b.sql']
        assert result.applied == []
        assert _applied(runner) == ['0000_a.sql']
        assert not _has_table(connections, 'b')


class TestLegacyBootstrap:
    """Tests for schemas that predate the tracking table"""

    def _create_legacy_users(self, connections):
        with connections.connect(SCHEMA) as conn:
            conn.exec_driver_sql(f'CREATE TABLE "{SCHEMA}".users (id INTEGER PRIMARY KEY)')
            conn.commit()

    def test_baseline_recorded_without_running(self, connections, runner, schema, write_migration):
        """Test the first file is marked applied and only later files run"""
        self._create_legacy_users(connections)
        # Would fail if executed: users already exists
        write_migration('0000_create_users.sql', _table_sql('users'))
        write_migration('0001_audit.sql', _table_sql('audit'))

        result = runner.migrate_schema(schema, bootstrap_legacy=True)

        assert result.baselined == '0000_create_users.sql'
        assert result.pending == ['0001_audit.sql']
        assert result.applied == ['0001_audit.sql']
        assert _applied(runner) == ['0000_create_users.sql', '0001_audit.sql']

    def test_no_bootstrap_without_legacy_tables(self, runner, schema, write_migration):
        """Test a schema without the baseline tables runs every file"""
        write_migration('0000_create_users.sql', _table_sql('users'))

        result = runner.migrate_schema(schema, bootstrap_legacy=True)

        assert result.baselined is None
        assert result.applied == ['0000_create_users.sql']

    def test_no_bootstrap_when_tracking_rows_exist(self, connections, runner, schema, write_migration):
        """Test the bootstrap only applies to schemas without tracking rows"""
        write_migration('0000_create_users.sql', _table_sql('users'))
        runner.migrate_schema(schema)
        write_migration('0001_audit.sql', _table_sql('audit'))

        result = runner.migrate_schema(schema, bootstrap_legacy=True)

        assert result.baselined is None
        assert result.applied == ['0001_audit.sql']

    def test_configured_baseline_missing_from_store(self, connections, migrations_dir, schema, write_migration):
        """Test an unknown baseline filename disables the bootstrap"""
        self._create_legacy_users(connections)
        write_migration('0000_audit.sql', _table_sql('audit'))
        runner = MigrationRunner(
            connections,
            MigrationFileStore(str(migrations_dir)),
            baseline_migration='0000_missing.sql',
            baseline_tables=('users',),
        )

        result = runner.migrate_schema(schema, bootstrap_legacy=True)

        assert result.baselined is None
        assert result.applied == ['0000_audit.sql']

    def test_dry_run_bootstrap_records_nothing(self, connections, runner, schema, write_migration):
        """Test dry-run reports the baseline without writing tracking rows"""
        self._create_legacy_users(connections)
        write_migration('0000_create_users.sql', _table_sql('users'))
        write_migration('0001_audit.sql', _table_sql('audit'))

        result = runner.migrate_schema(schema, dry_run=True, bootstrap_legacy=True)

        assert result.baselined == '0000_create_users.sql'
        assert result.pending == ['0001_audit.sql']
        assert _applied(runner) == []


class TestNonTransactionalMigrations:
    """Tests for files marked -- migrate:no-transaction"""

    def test_no_transaction_file_applied_and_recorded(self, connections, runner, schema, write_migration):
        """Test the file runs in autocommit mode and is recorded afterwards"""
        write_migration('0000_a.sql', _table_sql('a'))
        write_migration(
            '0001_a_idx.sql',
            '-- migrate:no-transaction\nCREATE INDEX "$TENANT_SCHEMA$".a_idx ON a (id)'
        )

        result = runner.migrate_schema(schema)

        assert result.applied == ['0000_a.sql', '0001_a_idx.sql']
        assert _applied(runner) == ['0000_a.sql', '0001_a_idx.sql']

    def test_unrecorded_no_transaction_file(self, connections, runner, schema, write_migration):
        """Test a tracking failure after a non-transactional file is reported as inconsistent"""
        write_migration('0000_audit.sql', '-- migrate:no-transaction\n' + _table_sql('audit'))
        record_applied = runner.tracker.record_applied

        def failing_record(conn, schema_name, filename):
            if filename == '0000_audit.sql':
                raise OperationalError('INSERT', {}, Exception('disk full'))
            return record_applied(conn, schema_name, filename)

        with patch.object(runner.tracker, 'record_applied', side_effect=failing_record):
            with pytest.raises(TrackingInconsistencyError) as exc_info:
                runner.migrate_schema(schema, tenant_identity='org_1')

        assert exc_info.value.filename == '0000_audit.sql'
        assert 'could not be recorded' in exc_info.value.message
        # The change is in place but not tracked
        assert _has_table(connections, 'audit')
        assert _applied(runner) == []

    def test_tracking_inconsistency_is_a_migration_error(self):
        """Test callers handling MigrationExecutionError also see inconsistencies"""
        assert issubclass(TrackingInconsistencyError, MigrationExecutionError)


class TestHistory:
    """Tests for MigrationRunner.history"""

    def test_history_without_tracking_table(self, runner, schema):
        """Test a schema never migrated has an empty history"""
        assert runner.history(schema) == []


class TestAdvisoryLock:
    """Tests for the per-schema PostgreSQL advisory lock"""

    def _runner(self, migrations_dir, conn):
        connections = MagicMock()
        connections.connect.return_value.__enter__.return_value = conn
        tracker = Mock(spec=MigrationTracker)
        tracker.applied_set.return_value = set()
        return MigrationRunner(connections, MigrationFileStore(str(migrations_dir)), tracker)

    def test_lock_taken_and_released(self, migrations_dir):
        """Test the run is wrapped in pg_advisory_lock / pg_advisory_unlock"""
        conn = MagicMock()
        conn.dialect.name = 'postgresql'
        runner = self._runner(migrations_dir, conn)

        runner.migrate_schema(SCHEMA)

        statements = [call.args[0] for call in conn.execute.call_args_list]
        assert 'pg_try_advisory_lock(' in str(statements[0])
        assert 'pg_advisory_unlock(' in str(statements[-1])
        assert SCHEMA in statements[0].compile().params.values()
        conn.invalidate.assert_not_called()

    @patch('tenancy.tenant_db.runner.time.sleep')
    def test_waits_while_lock_held(self, mock_sleep, migrations_dir):
        """Test the lock is retried until another run releases it"""
        attempts = iter([False, False, True])

        def execute(statement, *args, **kwargs):
            result = MagicMock()
            if 'pg_try_advisory_lock' in str(statement):
                result.scalar.return_value = next(attempts)
            return result

        conn = MagicMock()
        conn.dialect.name = 'postgresql'
        conn.execute.side_effect = execute
        runner = self._runner(migrations_dir, conn)

        runner.migrate_schema(SCHEMA)

        assert mock_sleep.call_count == 2
        runner.tracker.ensure_tracking_table.assert_called_once()

    def test_failed_unlock_invalidates_connection(self, migrations_dir):
        """Test the connection is discarded when the lock cannot be released"""
        def execute(statement, *args, **kwargs):
            if 'pg_advisory_unlock' in str(statement):
                raise OperationalError('unlock', {}, Exception('connection lost'))
            return MagicMock()

        conn = MagicMock()
        conn.dialect.name = 'postgresql'
        conn.execute.side_effect = execute
        runner = self._runner(migrations_dir, conn)

        result = runner.migrate_schema(SCHEMA)

        assert result.up_to_date
        conn.invalidate.assert_called_once()

    def test_no_lock_on_other_dialects(self, migrations_dir):
        """Test dialects without advisory locks run unlocked"""
        conn = MagicMock()
        conn.dialect.name = 'sqlite'
        runner = self._runner(migrations_dir, conn)

        runner.migrate_schema(SCHEMA)

        conn.execute.assert_not_called()
