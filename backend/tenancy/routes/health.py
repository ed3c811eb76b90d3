"""
Health Blueprint

GET /health reports whether the registry database is reachable.
"""

from flask import Blueprint

from tenancy.extensions import get_tenancy
from tenancy.utils.responses import ok, service_unavailable

health_bp = Blueprint('health', __name__)


@health_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint for monitoring."""
    services = get_tenancy()

    if not services.connections.check_connection():
        return service_unavailable('Registry database unreachable')

    return ok({
        'status': 'healthy',
        'service': 'Tenant Provisioning Backend',
        'tenant_migrations': len(services.store.list_ordered()),
        'cached_schema_pools': len(services.connections.cached_schemas()),
    })
