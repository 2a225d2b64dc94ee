from typing import Any, Dict, Optional


class PersistenceError(Exception):
    """The document store failed to carry out an operation."""


class DuplicateEntryError(PersistenceError):
    """A write was rejected by a unique index."""


class SchemaValidationError(Exception):
    """A document does not satisfy its collection schema."""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class TokenError(Exception):
    pass


class TokenExpiredError(TokenError):
    pass


class TokenInvalidError(TokenError):
    pass


class ApiError(Exception):
    """Raised by route handlers; rendered as the JSON error envelope."""

    def __init__(self, message: str, status_code: int, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.context = context
