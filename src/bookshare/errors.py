"""Exceptions raised by the lending core.

Each class carries the HTTP status the web layer answers with, so the
same taxonomy serves the Flask endpoints and the CLI.
"""


class LendingError(Exception):
    """Base exception for lending errors."""

    status_code = 500
    retryable = False

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__doc__.strip().splitlines()[0]
        super().__init__(self.message)


class ValidationError(LendingError):
    """Invalid input."""

    status_code = 400


class AuthenticationError(LendingError):
    """Not authenticated."""

    status_code = 401


class ForbiddenError(LendingError):
    """Forbidden."""

    status_code = 403


class NotFoundError(LendingError):
    """Not found."""

    status_code = 404


class ConflictError(LendingError):
    """Conflicting state."""

    status_code = 409


class TransientError(ConflictError):
    """Store busy or unreachable, retry the operation."""

    retryable = True
