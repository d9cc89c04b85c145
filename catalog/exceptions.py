"""
Exception hierarchy for the storefront store layer.

Every failure the store can signal is one of these kinds. The JSON views map
each kind to a stable HTTP status, so callers can tell a bad request from a
missing record, a refused one, or a payment processor outage.
"""


class StorefrontError(Exception):
    """Base exception for all store errors"""

    status_code = 400

    def __init__(self, message='', errors=None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}


class ValidationError(StorefrontError):
    """
    Input validation error.

    Carries field-level detail in ``errors`` (field name -> list of
    messages). Raised before any write happens.
    """

    status_code = 400


class NotFoundError(StorefrontError):
    """Referenced book, chapter, comment, media or user does not exist."""

    status_code = 404


class ForbiddenError(StorefrontError):
    """Caller is authenticated but does not own the resource."""

    status_code = 403


class ConflictError(StorefrontError):
    """
    Request clashes with existing state.

    Examples: purchasing a book twice, deleting a book that has purchases.
    """

    status_code = 409


class UnauthenticatedError(StorefrontError):
    """Missing or invalid caller identity; the caller should log in again."""

    status_code = 401


class PaymentProcessorError(StorefrontError):
    """
    Payment processor failure.

    Raised when the processor is unreachable, misconfigured, or rejects the
    request. Kept apart from ValidationError so checkout can decide whether
    to retry or abandon.
    """

    status_code = 502
