from fastapi import Request

from session_service.core.exceptions import StorageError
from session_service.services.session_repository import SessionRepository


def get_session_repository(request: Request) -> SessionRepository:
    """Dependency returning the repository built during application startup"""
    repository = getattr(request.app.state, "session_repository", None)
    if repository is None:
        raise StorageError("Session storage is not initialised", operation="startup")
    return repository
