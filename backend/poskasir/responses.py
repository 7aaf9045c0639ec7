# Overview: JSON envelope helpers used by every route.

from __future__ import annotations

from typing import Any

from flask import current_app, jsonify

from .errors import (
    ConflictError,
    ForbiddenError,
    InvalidCredentialsError,
    NotFoundError,
    PaymentGatewayError,
    ReportError,
    StorageError,
    UnauthorizedError,
    ValidationError,
)

# Most specific first; ConflictError subclasses ValueError like ValidationError
_CLIENT_ERRORS = (
    (ValidationError, 400, "validation_error"),
    (InvalidCredentialsError, 401, "invalid_credentials"),
    (UnauthorizedError, 401, "unauthorized"),
    (ForbiddenError, 403, "forbidden"),
    (NotFoundError, 404, "not_found"),
    (ConflictError, 409, "conflict"),
)

# Upstream failures: logged by the caller, answered without internal text
_UPSTREAM_ERRORS = (
    (StorageError, 502, "Object storage is unavailable"),
    (PaymentGatewayError, 502, "Payment gateway request failed"),
    (ReportError, 500, "Failed to generate report"),
)

DOMAIN_ERRORS = tuple(cls for cls, _, _ in _CLIENT_ERRORS + _UPSTREAM_ERRORS)


def success(message: str, data: Any = None, status: int = 200):
    return jsonify({"message": message, "data": data}), status


def failure(message: str, status: int, error: Any = None):
    """Error envelope. Callers must never pass internal exception text for 5xx."""
    return jsonify({"message": message, "error": error}), status


def internal_error():
    return failure("Internal server error", 500)


def domain_error(e: Exception):
    """Map a domain exception to its envelope and status code."""
    for cls, status, code in _CLIENT_ERRORS:
        if isinstance(e, cls):
            return failure(str(e), status, code)
    for cls, status, message in _UPSTREAM_ERRORS:
        if isinstance(e, cls):
            current_app.logger.error("%s: %s", type(e).__name__, e)
            return failure(message, status)
    return internal_error()
