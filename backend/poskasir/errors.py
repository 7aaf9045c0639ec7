# Overview: Domain exceptions shared by services and routes.

"""
Services raise these; routes translate them to HTTP status codes.

Anything not listed here that escapes a route is logged and answered
with a generic 500 by the app-level error handler.
"""


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(LookupError):
    """404: the addressed row does not exist (or is soft-deleted)."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate email)."""


class InvalidCredentialsError(Exception):
    """401: email/password pair did not match."""


class UnauthorizedError(Exception):
    """401: missing, expired or revoked session."""


class ForbiddenError(Exception):
    """403: authenticated but not allowed."""


class CategoryInUseError(ConflictError):
    """Category still referenced by live products."""


class OrderNotModifiableError(ConflictError):
    """Order is paid or cancelled."""


class OrderNotCancellableError(ConflictError):
    """Order is already paid or cancelled."""


class InvalidStatusTransitionError(ConflictError):
    """Requested operational status does not follow the current one."""


class InsufficientStockError(ConflictError):
    """Not enough stock to fulfil an order line."""


class StorageError(Exception):
    """Object storage is unavailable or rejected the request."""


class PaymentGatewayError(Exception):
    """Payment gateway call failed or returned an unusable response."""


class ReportError(Exception):
    """Raised when report generation fails."""
