"""
Exceptions for the session store service.

The repository raises these; the HTTP layer is the only place that turns them
into status codes (see the handlers registered in ``session_service.main``).
"""

from typing import Optional


class SessionServiceError(Exception):
    """Base exception for the session store service"""

    status_code: int = 500

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class ValidationError(SessionServiceError):
    """Malformed input. Never retried."""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, "VALIDATION_ERROR")


class SessionNotFound(SessionServiceError):
    """The session does not exist or has expired"""

    status_code = 404

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("Session does not exist.", "SESSION_NOT_FOUND")


class SessionAlreadyExists(SessionServiceError):
    """A caller-supplied session id collides with a live session"""

    status_code = 409

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("Session id is already in use.", "SESSION_ALREADY_EXISTS")


class StorageError(SessionServiceError):
    """Backend unavailable, timed out or returned a corrupt item. Retryable by the caller."""

    status_code = 503

    def __init__(self, message: str, operation: Optional[str] = None):
        self.operation = operation
        super().__init__(message, "STORAGE_ERROR")


class KeyGenerationExhausted(SessionServiceError):
    """Every generated session id collided with a live session"""

    status_code = 500

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Could not generate a unique session id after {attempts} attempts",
            "KEY_GENERATION_EXHAUSTED",
        )


class ItemAlreadyExists(Exception):
    """Conditional put failed because a live item holds the key.

    Raised by table backends and consumed by the repository.
    """

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"item already exists: {key}")
