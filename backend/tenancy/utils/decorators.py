"""
Route decorators.

Provides shared-secret verification for webhook endpoints.
"""

import hmac
import logging
from functools import wraps
from typing import Callable

from flask import current_app, request

from tenancy.utils.responses import unauthorized

logger = logging.getLogger(__name__)

WEBHOOK_SECRET_HEADER = 'X-Webhook-Secret'


def webhook_secret_required(fn: Callable) -> Callable:
    """
    Require the X-Webhook-Secret header to match WEBHOOK_SECRET.

    When WEBHOOK_SECRET is not configured the check is disabled (development);
    ProductionConfig refuses to start without it.

    Usage:
        @webhooks_bp.route('/organizations', methods=['POST'])
        @webhook_secret_required
        def organization_event():
            ...
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        secret = current_app.config.get('WEBHOOK_SECRET')
        if secret:
            provided = request.headers.get(WEBHOOK_SECRET_HEADER, '')
            if not hmac.compare_digest(provided.encode('utf-8'), secret.encode('utf-8')):
                logger.warning(f"Rejected webhook call with invalid secret from {request.remote_addr}")
                return unauthorized('Invalid webhook secret')
        return fn(*args, **kwargs)

    return wrapper
