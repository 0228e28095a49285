"""
Session repository.

Turns the three session operations into table backend calls and enforces the
session invariants:

- ids are unique among live sessions (conditional writes, bounded retries for
  generated ids, rejection for caller-supplied ones)
- every stored session has a username and an expiry in the future
- expired sessions are never returned, whether or not the backend has
  reclaimed them
- bulk delete goes through the username index, one idempotent delete per item

Every backend call runs under a deadline; a timeout surfaces as StorageError.
"""

import asyncio
import logging
import secrets
import time
from typing import Any, Awaitable, Callable, List, Optional

from session_service.core.config import Settings
from session_service.core.exceptions import (
    ItemAlreadyExists,
    KeyGenerationExhausted,
    SessionAlreadyExists,
    SessionNotFound,
    StorageError,
    ValidationError,
)
from session_service.core.schemas.session import Session
from session_service.storage.base import SessionTableBackend
from session_service.storage.codec import (
    PRIMARY_KEY,
    Item,
    item_expiry,
    item_to_session,
    session_to_item,
)

logger = logging.getLogger(__name__)

MAX_SESSION_ID_LENGTH = 1024
MAX_USERNAME_LENGTH = 256
SESSION_ID_BYTES = 16


def generate_session_id() -> str:
    """Random 128-bit URL-safe token"""
    return secrets.token_urlsafe(SESSION_ID_BYTES)


def _short(session_id: str) -> str:
    return f"{session_id[:6]}..."


class SessionRepository:
    """Session operations over a table backend"""

    def __init__(
        self,
        backend: SessionTableBackend,
        *,
        default_ttl_seconds: int = 7 * 24 * 3600,
        max_ttl_seconds: int = 30 * 24 * 3600,
        storage_timeout_seconds: float = 5.0,
        max_id_attempts: int = 3,
        clock: Callable[[], float] = time.time,
        id_generator: Callable[[], str] = generate_session_id,
    ):
        """Initialize the repository

        Args:
            backend: Table backend holding the sessions
            default_ttl_seconds: Lifetime used when the caller gives none
            max_ttl_seconds: Longest lifetime a caller may request
            storage_timeout_seconds: Default deadline for each backend call
            max_id_attempts: Generated ids tried before giving up
            clock: Returns the current time in epoch seconds
            id_generator: Returns a new candidate session id
        """
        self.backend = backend
        self.default_ttl_seconds = default_ttl_seconds
        self.max_ttl_seconds = max_ttl_seconds
        self.storage_timeout_seconds = storage_timeout_seconds
        self.max_id_attempts = max_id_attempts
        self._clock = clock
        self._id_generator = id_generator

    @classmethod
    def from_settings(
        cls, backend: SessionTableBackend, settings: Settings, **kwargs: Any
    ) -> "SessionRepository":
        return cls(
            backend,
            default_ttl_seconds=settings.SESSION_DEFAULT_TTL_SECONDS,
            max_ttl_seconds=settings.SESSION_MAX_TTL_SECONDS,
            storage_timeout_seconds=settings.STORAGE_TIMEOUT_SECONDS,
            max_id_attempts=settings.SESSION_ID_MAX_ATTEMPTS,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get(self, session_id: str, *, timeout: Optional[float] = None) -> Session:
        """
        Fetch a live session.

        Raises:
            ValidationError: If session_id is empty
            SessionNotFound: If the session does not exist or has expired
            StorageError: On backend failure or timeout
        """
        session_id = self._validate_session_id(session_id)

        item = await self._call("get_item", self.backend.get_item(session_id), timeout)
        if item is None:
            raise SessionNotFound(session_id)

        session = item_to_session(item)
        if session.is_expired(self._now()):
            logger.debug(f"Session {_short(session_id)} expired, awaiting reclamation")
            raise SessionNotFound(session_id)
        return session

    async def create(
        self,
        username: Optional[str],
        payload: Optional[str],
        *,
        ttl_seconds: Optional[int] = None,
        expires_at: Optional[int] = None,
        session_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Session:
        """
        Store a new session.

        A caller-supplied session_id that is held by a live session is
        rejected rather than overwritten. Without one, random ids are tried
        until one is free.

        Raises:
            ValidationError: On missing or out-of-range input
            SessionAlreadyExists: If the supplied session_id is taken
            KeyGenerationExhausted: If every generated id collided
            StorageError: On backend failure or timeout
        """
        username = self._validate_username(username)
        payload = self._validate_payload(payload)
        now = self._now()
        expires_at = self._resolve_expiry(now, ttl_seconds, expires_at)

        if session_id is not None:
            session_id = self._validate_session_id(session_id)
            session = Session(
                session_id=session_id,
                username=username,
                payload=payload,
                created_at=now,
                expires_at=expires_at,
            )
            try:
                await self._put(session, now, timeout)
            except ItemAlreadyExists as e:
                logger.warning(f"Rejected create for taken session id {_short(session_id)}")
                raise SessionAlreadyExists(session_id) from e
            logger.info(f"Created session {_short(session_id)} for supplied id")
            return session

        for attempt in range(1, self.max_id_attempts + 1):
            session = Session(
                session_id=self._id_generator(),
                username=username,
                payload=payload,
                created_at=now,
                expires_at=expires_at,
            )
            try:
                await self._put(session, now, timeout)
            except ItemAlreadyExists:
                logger.warning(
                    f"Generated session id collided (attempt {attempt}/{self.max_id_attempts})"
                )
                continue
            logger.info(
                f"Created session {_short(session.session_id)} expiring at {expires_at}"
            )
            return session

        logger.error(
            f"Session id generation exhausted after {self.max_id_attempts} attempts"
        )
        raise KeyGenerationExhausted(self.max_id_attempts)

    async def delete_all_for_user(
        self, username: Optional[str], *, timeout: Optional[float] = None
    ) -> int:
        """
        Delete every session owned by username.

        Items are found through the username index and deleted one at a time.
        This is not a transaction: sessions written while the delete runs may
        survive it. If a delete fails, the ones already done stay done and
        the whole call can be repeated safely.

        Returns:
            Number of live sessions deleted (0 if the user has none)

        Raises:
            ValidationError: If username is empty
            StorageError: On backend failure, timeout or a corrupt index item
        """
        if isinstance(username, str) and len(username) > MAX_USERNAME_LENGTH:
            # No stored session can have this owner
            return 0
        username = self._validate_username(username)
        now = self._now()

        items = await self._call("query", self._collect_user_items(username), timeout)
        logger.info(f"{len(items)} sessions found for user")

        deleted = 0
        for position, item in enumerate(items):
            key = item.get(PRIMARY_KEY)
            if not isinstance(key, str) or not key:
                raise StorageError("Index returned an item without a key", operation="query")
            expiry = item_expiry(item)
            try:
                await self._call("delete_item", self.backend.delete_item(key), timeout)
            except StorageError:
                logger.error(
                    f"Bulk delete stopped after {position} of {len(items)} items"
                )
                raise
            if expiry is None or expiry > now:
                deleted += 1

        logger.info(f"Deleted {deleted} live sessions for user")
        return deleted

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now(self) -> int:
        return int(self._clock())

    async def _call(
        self, operation: str, awaitable: Awaitable[Any], timeout: Optional[float]
    ) -> Any:
        deadline = timeout if timeout is not None else self.storage_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=deadline)
        except asyncio.TimeoutError as e:
            logger.error(f"Storage {operation} timed out after {deadline}s")
            raise StorageError(
                f"Session storage timed out ({operation})", operation=operation
            ) from e

    async def _put(self, session: Session, now: int, timeout: Optional[float]) -> None:
        await self._call(
            "put_item", self.backend.put_item(session_to_item(session), now=now), timeout
        )

    async def _collect_user_items(self, username: str) -> List[Item]:
        return [item async for item in self.backend.query_by_username(username)]

    def _resolve_expiry(
        self, now: int, ttl_seconds: Optional[int], expires_at: Optional[int]
    ) -> int:
        if ttl_seconds is not None and expires_at is not None:
            raise ValidationError("Give either ttlSeconds or expiresAt, not both", "ttlSeconds")

        if expires_at is not None:
            if isinstance(expires_at, bool) or not isinstance(expires_at, int):
                raise ValidationError("expiresAt must be an integer", "expiresAt")
            if expires_at <= now:
                raise ValidationError("expiresAt must be in the future", "expiresAt")
            if expires_at - now > self.max_ttl_seconds:
                raise ValidationError(
                    f"expiresAt must be within {self.max_ttl_seconds} seconds", "expiresAt"
                )
            return expires_at

        if ttl_seconds is None:
            return now + self.default_ttl_seconds
        if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int):
            raise ValidationError("ttlSeconds must be an integer", "ttlSeconds")
        if ttl_seconds < 1 or ttl_seconds > self.max_ttl_seconds:
            raise ValidationError(
                f"ttlSeconds must be between 1 and {self.max_ttl_seconds}", "ttlSeconds"
            )
        return now + ttl_seconds

    @staticmethod
    def _validate_session_id(session_id: Optional[str]) -> str:
        if not isinstance(session_id, str) or not session_id.strip():
            raise ValidationError("sessionId is required", "sessionId")
        if len(session_id) > MAX_SESSION_ID_LENGTH:
            raise ValidationError(
                f"sessionId must be at most {MAX_SESSION_ID_LENGTH} characters", "sessionId"
            )
        return session_id

    @staticmethod
    def _validate_username(username: Optional[str]) -> str:
        if not isinstance(username, str) or not username.strip():
            raise ValidationError("username is required", "username")
        if len(username) > MAX_USERNAME_LENGTH:
            raise ValidationError(
                f"username must be at most {MAX_USERNAME_LENGTH} characters", "username"
            )
        return username

    @staticmethod
    def _validate_payload(payload: Optional[str]) -> str:
        if payload is None:
            raise ValidationError("payload is required", "payload")
        if not isinstance(payload, str):
            raise ValidationError("payload must be a string", "payload")
        return payload
