"""
Webhooks Blueprint - Organization lifecycle events

POST /api/webhooks/organizations receives organization events from the
identity provider:
- organization.created: provision the tenant (registry row, schema,
  migrations) and seed the creator as owner
- organization.updated: rename the tenant
- organization.deleted: disable the tenant (schema and data are kept)
- any other type: acknowledged and ignored

Events may be delivered more than once; every handler is idempotent.
"""

import logging
from typing import Any, Dict

from flask import Blueprint, request
from marshmallow import ValidationError

from tenancy.errors import (
    DatabaseConnectionError,
    MigrationExecutionError,
    RegistrationConflict,
    TenancyError,
    TrackingInconsistencyError,
)
from tenancy.extensions import get_tenancy
from tenancy.schemas.event_schema import organization_data_schema, webhook_event_schema
from tenancy.utils.decorators import webhook_secret_required
from tenancy.utils.responses import (
    bad_request,
    conflict,
    created,
    internal_error,
    ok,
    service_unavailable,
    validation_error,
)

logger = logging.getLogger(__name__)

# Create blueprint
webhooks_bp = Blueprint('webhooks', __name__, url_prefix='/api/webhooks')


@webhooks_bp.route('/organizations', methods=['POST'])
@webhook_secret_required
def organization_event():
    """
    Handle an organization lifecycle event.

    **Authentication**: X-Webhook-Secret header

    **Request Body**:
        {
            "type": "organization.created",
            "data": {
                "id": "org_2abc",
                "name": "Acme Corp",
                "slug": "acme-corp",            // optional, derived from name
                "owner": {                      // optional
                    "id": "user_2xyz",
                    "email": "jane@acme.com",
                    "first_name": "Jane"
                }
            }
        }

    **Response**:
        201 Created: new tenant provisioned
        200 OK: tenant already existed, event applied or ignored
        400 Bad Request: invalid payload
        401 Unauthorized: missing or wrong secret
        409 Conflict: schema name owned by another tenant
        503 Service Unavailable: database unreachable
        500 Internal Server Error: provisioning failed (details name the
                                   schema and failing migration)
    """
    payload = request.get_json(silent=True)
    if not payload:
        logger.warning("Webhook called with empty or non-JSON body")
        return bad_request('Request body is required')

    try:
        event = webhook_event_schema.load(payload)
    except ValidationError as err:
        logger.warning(f"Invalid webhook payload: {err.messages}")
        return validation_error(details=err.messages)

    event_type = event['type']
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Ignoring webhook event {event_type}")
        return ok({'received': True, 'type': event_type}, 'Event ignored')

    try:
        # deleted events may carry only the id
        partial = ('name',) if event_type == 'organization.deleted' else ()
        data = organization_data_schema.load(event['data'], partial=partial)
    except ValidationError as err:
        logger.warning(f"Invalid {event_type} data: {err.messages}")
        return validation_error(details={'data': err.messages})

    logger.info(f"Received {event_type} for organization {data['id']}")
    return handler(data)


def _handle_created(data: Dict[str, Any]):
    services = get_tenancy()
    identity = data['id']

    try:
        result = services.provisioner.provision_from_event(data)
    except ValueError as e:
        return bad_request(str(e))
    except RegistrationConflict as e:
        return conflict(e.message, details={'tenant_identity': identity, 'schema_name': e.schema_name})
    except TrackingInconsistencyError as e:
        logger.critical(f"Provisioning of {identity} left an unrecorded migration: {e}")
        return internal_error(
            'Tenant provisioning failed',
            details={
                'tenant_identity': identity,
                'schema_name': e.schema_name,
                'filename': e.filename,
            },
            code='TRACKING_INCONSISTENCY'
        )
    except MigrationExecutionError as e:
        logger.error(f"Provisioning of {identity} failed: {e}")
        return internal_error(
            'Tenant provisioning failed',
            details={
                'tenant_identity': identity,
                'schema_name': e.schema_name,
                'filename': e.filename,
            },
            code='MIGRATION_FAILED'
        )
    except DatabaseConnectionError as e:
        logger.error(f"Provisioning of {identity} failed, database unavailable: {e}")
        return service_unavailable('Database unavailable')
    except TenancyError as e:
        logger.error(f"Provisioning of {identity} failed: {e}", exc_info=True)
        return internal_error(
            'Tenant provisioning failed',
            details={'tenant_identity': identity, 'error': e.message},
            code='PROVISIONING_FAILED'
        )

    if result.existing:
        return ok(result.to_dict(), 'Tenant already provisioned')
    return created(result.to_dict(), 'Tenant provisioned')


def _handle_updated(data: Dict[str, Any]):
    tenant = get_tenancy().registry.update_name(data['id'], data['name'])
    if tenant is None:
        return ok({'received': True, 'found': False}, 'Tenant not registered')
    return ok({'received': True, 'found': True, 'tenant': tenant.to_dict()}, 'Tenant updated')


def _handle_deleted(data: Dict[str, Any]):
    tenant = get_tenancy().registry.set_active(data['id'], False)
    if tenant is None:
        return ok({'received': True, 'found': False}, 'Tenant not registered')
    return ok({'received': True, 'found': True, 'tenant': tenant.to_dict()}, 'Tenant deactivated')


EVENT_HANDLERS = {
    'organization.created': _handle_created,
    'organization.updated': _handle_updated,
    'organization.deleted': _handle_deleted,
}
