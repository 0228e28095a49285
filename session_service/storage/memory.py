"""In-memory session table backend for tests and local development."""

import copy
import logging
from typing import Any, AsyncIterator, Dict, Optional

from session_service.core.exceptions import ItemAlreadyExists
from session_service.storage.base import SessionTableBackend
from session_service.storage.codec import PRIMARY_KEY, USERNAME_KEY, Item, item_expiry

logger = logging.getLogger(__name__)


class InMemoryTableBackend(SessionTableBackend):
    """
    Dict-backed table with the same conditional-write semantics as DynamoDB.

    Expired items are kept until ``reclaim_expired`` is called, the way TTL
    deletion lags behind expiry on the real table.
    """

    name = "memory"

    def __init__(self) -> None:
        self._items: Dict[str, Item] = {}

    async def put_item(self, item: Item, *, now: int) -> None:
        key = item[PRIMARY_KEY]
        existing = self._items.get(key)
        if existing is not None:
            expiry = item_expiry(existing)
            if expiry is None or expiry > now:
                raise ItemAlreadyExists(key)
            logger.debug("Overwriting expired item that was not reclaimed yet")
        self._items[key] = copy.deepcopy(item)

    async def get_item(self, key: str) -> Optional[Item]:
        item = self._items.get(key)
        return copy.deepcopy(item) if item is not None else None

    async def query_by_username(self, username: str) -> AsyncIterator[Item]:
        # Snapshot so concurrent writes during iteration are not observed
        matches = [
            copy.deepcopy(item)
            for item in self._items.values()
            if item.get(USERNAME_KEY) == username
        ]
        for item in matches:
            yield item

    async def delete_item(self, key: str) -> None:
        self._items.pop(key, None)

    async def health_check(self) -> Dict[str, Any]:
        return {
            "type": self.name,
            "healthy": True,
            "message": "In-memory storage active",
            "item_count": len(self._items),
        }

    def reclaim_expired(self, now: int) -> int:
        """Physically remove expired items, returning how many were removed"""
        expired = []
        for key, item in self._items.items():
            expiry = item_expiry(item)
            if expiry is not None and expiry <= now:
                expired.append(key)
        for key in expired:
            del self._items[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._items)
