"""
Session API endpoints with rate limiting.

Thin HTTP layer over SessionRepository. Repository exceptions propagate to
the handlers registered in ``session_service.main``, which are the only place
they become status codes. Nothing here retries a storage call.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

from session_service.api.dependencies import get_session_repository
from session_service.core.config import settings
from session_service.core.exceptions import ValidationError
from session_service.core.limiter import limiter
from session_service.core.schemas.session import (
    CreateSessionRequest,
    DeleteSessionsResponse,
    ErrorResponse,
    Session,
)
from session_service.services.session_repository import SessionRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["Sessions"])

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    503: {"model": ErrorResponse, "description": "Session storage unavailable"},
}


@router.get(
    "",
    response_model=Session,
    responses={**_ERRORS, 404: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit_read_endpoints)
async def get_session_by_query(
    request: Request,
    response: Response,
    id: Optional[str] = Query(None, description="Session id"),
    repository: SessionRepository = Depends(get_session_repository),
):
    """
    Fetch a session by the ``id`` query parameter.

    Returns 404 if the session does not exist or has expired.
    """
    if not id:
        raise ValidationError("Missing query parameter: id", "id")
    return await repository.get(id)


@router.get(
    "/{session_id:path}",
    response_model=Session,
    responses={**_ERRORS, 404: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit_read_endpoints)
async def get_session(
    request: Request,
    response: Response,
    session_id: str,
    repository: SessionRepository = Depends(get_session_repository),
):
    """
    Fetch a session by id.

    The id may contain ``/`` (sent as ``%2F``). Returns 404 if the session
    does not exist or has expired.
    """
    return await repository.get(session_id)


@router.post(
    "",
    response_model=Session,
    status_code=status.HTTP_201_CREATED,
    responses={**_ERRORS, 409: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit_write_endpoints)
async def create_session(
    request: Request,
    response: Response,
    body: CreateSessionRequest,
    repository: SessionRepository = Depends(get_session_repository),
):
    """
    Create a session.

    The session id is generated unless ``sessionId`` is given; a supplied id
    already held by a live session is rejected with 409.
    """
    return await repository.create(
        body.username,
        body.payload,
        ttl_seconds=body.ttl_seconds,
        session_id=body.session_id,
    )


@router.delete(
    "/{username:path}",
    response_model=DeleteSessionsResponse,
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit_write_endpoints)
async def delete_user_sessions(
    request: Request,
    response: Response,
    username: str,
    repository: SessionRepository = Depends(get_session_repository),
):
    """
    Delete every session belonging to a user.

    A user without sessions is not an error: the response reports a
    ``deletedCount`` of 0, as does a username longer than any stored one.
    Usernames may contain ``/``. The delete is best effort and not atomic.
    """
    deleted_count = await repository.delete_all_for_user(username)
    return DeleteSessionsResponse(username=username, deleted_count=deleted_count)
