#!/usr/bin/env python3
"""
Tenant schema migration for every registered tenant

Applies the SQL files of tenant_migrations/ that are still pending on each
tenant schema. A failing tenant does not stop the run; the exit code is 1 if
any tenant failed.

Usage:
    # Dry-run (show what would be applied without changing anything)
    python backend/scripts/migrate_all_tenants.py --dry-run

    # Apply migrations
    python backend/scripts/migrate_all_tenants.py

    # Migrate a single tenant
    python backend/scripts/migrate_all_tenants.py --tenant-id <tenant_id>

    # Migrate 8 tenants in parallel
    python backend/scripts/migrate_all_tenants.py --workers 8

    # Show migration history
    python backend/scripts/migrate_all_tenants.py --history

Ctrl-C stops the run after the tenants currently being migrated; remaining
tenants are reported as skipped.
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_dir))

from dotenv import load_dotenv

# Config classes read the environment at import time
load_dotenv()

from tenancy import create_app
from tenancy.errors import TenancyError
from tenancy.services.fleet_migrator import FleetReport, TenantStatus

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def show_migration_history(history: dict, tenants_by_id: dict):
    """Print the applied migrations of each tenant."""
    for identity, entries in history.items():
        tenant = tenants_by_id.get(identity)
        print(f"\n{'='*80}")
        print(f"Tenant: {tenant.name if tenant else identity} ({tenant.schema_name if tenant else '?'})")
        print(f"{'='*80}")

        if not entries:
            print("No migration history found")
            continue

        print(f"\n{'Applied At':<25} {'Migration'}")
        print(f"{'-'*25} {'-'*50}")
        for entry in entries:
            applied_at = entry['applied_at'].strftime('%Y-%m-%d %H:%M:%S') if entry['applied_at'] else 'N/A'
            print(f"{applied_at:<25} {entry['filename']}")


def print_summary(report: FleetReport):
    """Print the per-status counts and the failed tenants."""
    print(f"\n{'='*80}")
    print("Migration Summary")
    print(f"{'='*80}\n")

    print(f"Total tenants: {len(report.outcomes)}")
    print(f"  ✓ Migrated: {report.count(TenantStatus.MIGRATED)}")
    print(f"  ✓ Up to date: {report.count(TenantStatus.UP_TO_DATE)}")
    if report.count(TenantStatus.WOULD_MIGRATE):
        print(f"  → Would migrate: {report.count(TenantStatus.WOULD_MIGRATE)}")
    if report.count(TenantStatus.SKIPPED):
        print(f"  - Skipped: {report.count(TenantStatus.SKIPPED)}")
    if report.failed:
        print(f"  ✗ Failed: {len(report.failed)}")

    baselined = [o for o in report.outcomes if o.baselined]
    if baselined:
        print(f"\nLegacy schemas baselined: {len(baselined)}")
        for outcome in baselined:
            print(f"  {outcome.name} ({outcome.schema_name}): {outcome.baselined}")

    if report.failed:
        print(f"\n{'='*80}")
        print("Errors:")
        print(f"{'='*80}")
        for outcome in report.failed:
            print(f"\n{outcome.name} ({outcome.schema_name}):")
            if outcome.failed_filename:
                print(f"  Failed migration: {outcome.failed_filename}")
            print(f"  {outcome.error}")


def main():
    """Script entry point."""
    parser = argparse.ArgumentParser(
        description='Migrate tenant schemas',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would be done without applying migrations'
    )
    parser.add_argument(
        '--tenant-id',
        type=str,
        help='Migrate only a specific tenant by ID'
    )
    parser.add_argument(
        '--history',
        action='store_true',
        help='Show migration history for all tenants (or specific tenant with --tenant-id)'
    )
    parser.add_argument(
        '--workers',
        type=int,
        default=None,
        help='Number of tenants migrated in parallel (default: FLEET_MAX_WORKERS)'
    )

    args = parser.parse_args()

    app = create_app()
    services = app.extensions['tenancy']

    try:
        if args.history:
            history = services.fleet.history(args.tenant_id)
            if not history:
                print("No tenants found in the database")
                sys.exit(0)
            tenants_by_id = {t.id: t for t in services.registry.list_all()}
            show_migration_history(history, tenants_by_id)
            sys.exit(0)

        cancel_event = threading.Event()

        def request_cancel(signum, frame):
            logger.warning("Cancellation requested, finishing tenants in progress")
            cancel_event.set()

        signal.signal(signal.SIGINT, request_cancel)
        signal.signal(signal.SIGTERM, request_cancel)

        print(f"\n{'='*80}")
        print("Tenant Schema Migration")
        print(f"{'='*80}")
        print(f"Migrations: {len(services.store.list_ordered())} file(s) in {services.store.directory}")
        print(f"Mode: {'DRY RUN (no changes will be made)' if args.dry_run else 'LIVE (migrations will be applied)'}")
        print(f"{'='*80}\n")

        report = services.fleet.run(
            dry_run=args.dry_run,
            tenant_identity=args.tenant_id,
            max_workers=args.workers,
            cancel_event=cancel_event,
        )

        if not report.outcomes:
            print("No tenants found in the database")
            sys.exit(0)

        print_summary(report)
        sys.exit(0 if report.succeeded else 1)

    except TenancyError as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"\n✗ Fatal error: {e}")
        sys.exit(1)
    finally:
        services.close()


if __name__ == "__main__":
    main()
