"""Domain-specific exceptions for the bookkeeping core services."""


class BooksError(Exception):
    """Base class for errors surfaced to callers of the core services."""

    code = "ERROR"


class ValidationError(BooksError, ValueError):
    """Raised when provided data does not meet validation requirements."""

    code = "VALIDATION_ERROR"


class RecordNotFoundError(BooksError, LookupError):
    """Raised when a transaction, category, shareholder or disbursement cannot be located."""

    code = "NOT_FOUND"


class UnauthenticatedError(BooksError):
    """Raised when no user identity could be resolved for the current call."""

    code = "UNAUTHENTICATED"


class PersistenceError(BooksError, IOError):
    """Raised when the persistence layer encounters unrecoverable issues."""

    code = "PERSISTENCE_ERROR"
