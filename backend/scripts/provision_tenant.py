#!/usr/bin/env python3
"""
Provision a single tenant from the command line

Same flow as the organization.created webhook: register the tenant, create
its schema and apply every tenant migration. Safe to re-run for an existing
tenant (only pending migrations are applied).

Usage:
    python backend/scripts/provision_tenant.py --id org_2abc --name "Acme Corp"
    python backend/scripts/provision_tenant.py --id org_2abc --name "Acme Corp" --slug acme-corp

    # Seed the owner member as well
    python backend/scripts/provision_tenant.py --id org_2abc --name "Acme Corp" \
        --owner-id user_2xyz --owner-email jane@acme.com
"""

import argparse
import logging
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_dir))

from dotenv import load_dotenv

# Config classes read the environment at import time
load_dotenv()

from tenancy import create_app
from tenancy.errors import MigrationExecutionError, TenancyError

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    """Script entry point."""
    parser = argparse.ArgumentParser(
        description='Provision one tenant schema',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('--id', required=True, help='Tenant identity (organization id)')
    parser.add_argument('--name', required=True, help='Tenant display name')
    parser.add_argument('--slug', help='Tenant slug (derived from name if omitted)')
    parser.add_argument('--owner-id', help='Owner user id to seed in the tenant')
    parser.add_argument('--owner-email', help='Owner email (required with --owner-id)')

    args = parser.parse_args()

    owner = None
    if args.owner_id:
        if not args.owner_email:
            parser.error('--owner-email is required with --owner-id')
        owner = {'id': args.owner_id, 'email': args.owner_email}

    app = create_app()
    services = app.extensions['tenancy']

    try:
        result = services.provisioner.provision(args.id, args.name, args.slug, owner=owner)
    except MigrationExecutionError as e:
        print(f"\n✗ Migration {e.filename} failed on {e.schema_name}: {e}")
        sys.exit(1)
    except (TenancyError, ValueError) as e:
        logger.error(f"Provisioning failed: {e}", exc_info=True)
        print(f"\n✗ Provisioning failed: {e}")
        sys.exit(1)
    finally:
        services.close()

    state = 'already existed' if result.existing else 'created'
    print(f"\n✓ Tenant {result.identity} {state}: schema {result.schema_name}")
    if result.remapped:
        print("  Slug was remapped from another identity")
    print(f"  Migrations applied: {len(result.applied)}")
    for filename in result.applied:
        print(f"    {filename}")
    if result.owner_created:
        print(f"  Owner created: {owner['id']}")


if __name__ == "__main__":
    main()
