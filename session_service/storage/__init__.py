from session_service.core.config import Settings
from session_service.storage.base import SessionTableBackend
from session_service.storage.dynamodb import DynamoDBTableBackend
from session_service.storage.memory import InMemoryTableBackend

__all__ = [
    "SessionTableBackend",
    "DynamoDBTableBackend",
    "InMemoryTableBackend",
    "create_backend",
]


def create_backend(settings: Settings) -> SessionTableBackend:
    """Build the table backend selected by STORAGE_BACKEND"""
    if settings.STORAGE_BACKEND == "memory":
        return InMemoryTableBackend()
    return DynamoDBTableBackend(
        settings.TABLE_NAME,
        index_name=settings.USERNAME_INDEX_NAME,
        region=settings.AWS_REGION,
        endpoint_url=settings.DYNAMODB_ENDPOINT_URL,
        connect_timeout=settings.STORAGE_CONNECT_TIMEOUT_SECONDS,
        read_timeout=settings.STORAGE_TIMEOUT_SECONDS,
        max_attempts=settings.STORAGE_MAX_ATTEMPTS,
    )
