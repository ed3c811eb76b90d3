#!/usr/bin/env python3
"""
Administrative reset of all tenants

Drops every tenant schema (registered in the registry or named with the
tenant prefix) and deletes every registry row. The registry table itself is
kept; run `flask db upgrade` afterwards if it was never created.

THIS DESTROYS ALL TENANT DATA. Refused when FLASK_ENV=production.

Usage:
    python backend/scripts/reset_db.py --yes
"""

import argparse
import logging
import os
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_dir))

from dotenv import load_dotenv

# Config classes read the environment at import time
load_dotenv()

from tenancy import create_app
from tenancy.errors import TenancyError

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    """Script entry point."""
    parser = argparse.ArgumentParser(
        description='Drop all tenant schemas and empty the tenant registry (DANGEROUS!)',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument(
        '--yes',
        action='store_true',
        help='Confirm that all tenant data will be destroyed'
    )

    args = parser.parse_args()

    if os.environ.get('FLASK_ENV') == 'production':
        print("✗ Refusing to reset tenants in production")
        sys.exit(1)

    if not args.yes:
        print("✗ This drops every tenant schema. Re-run with --yes to confirm.")
        sys.exit(1)

    app = create_app()
    services = app.extensions['tenancy']

    try:
        dropped = services.registry.reset_all()
    except TenancyError as e:
        logger.error(f"Reset failed: {e}", exc_info=True)
        print(f"\n✗ Reset failed: {e}")
        sys.exit(1)
    finally:
        services.close()

    print(f"\n✓ Dropped {len(dropped)} tenant schema(s)")
    for schema_name in dropped:
        print(f"  {schema_name}")
    print("Registry emptied. Ready for new tenants.")


if __name__ == "__main__":
    main()
