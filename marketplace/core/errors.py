"""
Domain error taxonomy.

Every error carries the HTTP status it maps to and a user-facing ``detail``.
The FastAPI exception handlers in ``marketplace.main`` render them as
``{"detail": ...}`` so routers never translate domain rules by hand.
"""
from fastapi import status


class MarketplaceError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request could not be processed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Forbidden(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Not authorized"


class Conflict(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


class InvalidState(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Operation not allowed in the current state"


class ValidationError(MarketplaceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Invalid input"


class Unauthenticated(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Could not validate credentials"


class StorageError(MarketplaceError):
    """Unexpected failure of the backing store. Fatal to the request, never retried."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"
