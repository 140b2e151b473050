"""Domain exception classes for the library API."""


class LibraryAPIError(Exception):
    """Base class for all library API errors."""

    pass


class ValidationError(LibraryAPIError):
    """Raised when a required book field is missing or empty."""

    pass


class NotFoundError(LibraryAPIError):
    """Raised when no book matches the requested identity."""

    pass


class StorageError(LibraryAPIError):
    """Raised when MongoDB is unreachable or a query fails."""

    pass


class UnauthorizedError(LibraryAPIError):
    """Raised when a request carries no logged-in principal."""

    pass


class AuthenticationError(LibraryAPIError):
    """Raised when the GitHub OAuth handshake cannot produce a principal."""

    pass
