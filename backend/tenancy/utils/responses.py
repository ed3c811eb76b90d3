"""
JSON response helpers for the webhook and health endpoints.

Success: {"success": true, "message": ..., "data": ...}
Error:   {"success": false, "error": {"code": ..., "message": ..., "details": ...}}
"""

from http import HTTPStatus
from typing import Any, Dict, Optional, Union

from flask import Response, jsonify


def success_response(
    data: Any = None,
    message: str = "Success",
    status_code: int = HTTPStatus.OK
) -> tuple[Response, int]:
    """
    Build a success response.

    Args:
        data: JSON-serializable payload, omitted when None
        message: Success message
        status_code: HTTP status code (default: 200 OK)

    Returns:
        Tuple of (JSON response, status code)
    """
    response_body = {
        "success": True,
        "message": message,
    }

    if data is not None:
        response_body["data"] = data

    return jsonify(response_body), status_code


def error_response(
    code: str,
    message: str,
    details: Optional[Union[str, Dict[str, Any]]] = None,
    status_code: int = HTTPStatus.BAD_REQUEST
) -> tuple[Response, int]:
    """
    Build an error response.

    Args:
        code: Machine-readable error code (e.g. "MIGRATION_FAILED")
        message: Human-readable error message
        details: Extra context (string or dict), omitted when None
        status_code: HTTP status code (default: 400 Bad Request)

    Returns:
        Tuple of (JSON response, status code)

    Example:
        >>> return error_response(
        ...     "MIGRATION_FAILED",
        ...     "Tenant provisioning failed",
        ...     {"schema_name": "tenant_acme_corp", "filename": "0001_add_index.sql"},
        ...     500
        ... )
    """
    error_body = {
        "code": code,
        "message": message,
    }

    if details is not None:
        error_body["details"] = details

    return jsonify({"success": False, "error": error_body}), status_code


def ok(data: Any = None, message: str = "Success") -> tuple[Response, int]:
    return success_response(data, message, HTTPStatus.OK)


def created(data: Any = None, message: str = "Resource created") -> tuple[Response, int]:
    return success_response(data, message, HTTPStatus.CREATED)


def bad_request(message: str, details: Optional[Union[str, Dict[str, Any]]] = None) -> tuple[Response, int]:
    return error_response("BAD_REQUEST", message, details, HTTPStatus.BAD_REQUEST)


def unauthorized(message: str = "Authentication required", details: Optional[str] = None) -> tuple[Response, int]:
    return error_response("UNAUTHORIZED", message, details, HTTPStatus.UNAUTHORIZED)


def not_found(resource: str = "Resource", details: Optional[str] = None) -> tuple[Response, int]:
    return error_response("NOT_FOUND", f"{resource} not found", details, HTTPStatus.NOT_FOUND)


def conflict(message: str, details: Optional[Union[str, Dict[str, Any]]] = None) -> tuple[Response, int]:
    return error_response("CONFLICT", message, details, HTTPStatus.CONFLICT)


def validation_error(message: str = "Validation failed", details: Optional[Dict[str, Any]] = None) -> tuple[Response, int]:
    """
    400 response for payload validation errors.

    Args:
        message: Error message
        details: Field-level errors, as produced by marshmallow's ValidationError.messages
    """
    return error_response("VALIDATION_ERROR", message, details, HTTPStatus.BAD_REQUEST)


def internal_error(
    message: str = "Internal server error",
    details: Optional[Union[str, Dict[str, Any]]] = None,
    code: str = "INTERNAL_ERROR"
) -> tuple[Response, int]:
    return error_response(code, message, details, HTTPStatus.INTERNAL_SERVER_ERROR)


def service_unavailable(message: str = "Service temporarily unavailable", details: Optional[str] = None) -> tuple[Response, int]:
    return error_response("SERVICE_UNAVAILABLE", message, details, HTTPStatus.SERVICE_UNAVAILABLE)
