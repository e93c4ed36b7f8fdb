"""Error taxonomy for the marketplace backend.

Services raise these; ``main`` turns them into ``{"detail": ...}`` responses
using each class's ``status_code``.
"""


class LivestockMartError(Exception):
    """Base exception for all marketplace errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(LivestockMartError):
    """Malformed, missing or empty input."""

    status_code = 400


class AuthenticationError(LivestockMartError):
    """Missing, invalid or expired credential, or bad login details."""

    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class AuthorizationError(LivestockMartError):
    """Acting on a resource the caller does not own."""

    status_code = 403


class NotFoundError(LivestockMartError):
    """Raised when an order, listing or account id doesn't exist."""

    status_code = 404

    def __init__(self, kind: str, ident: str | None = None):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} not found")


class ConflictError(LivestockMartError):
    """Request clashes with the current state of a record."""

    status_code = 409


class InvalidTransitionError(ConflictError):
    """Illegal order status change, e.g. cancelling a delivered order."""

    status_code = 400

    def __init__(self, message: str, current: str | None = None, requested: str | None = None):
        self.current = current
        self.requested = requested
        super().__init__(message)


class DependencyError(LivestockMartError):
    """Persistence or external service failure."""

    status_code = 500
