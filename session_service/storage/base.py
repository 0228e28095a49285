"""
Session table backend interface.

A backend stores session items under a primary key (``PK``), maintains a
secondary lookup by username (``GSI1PK``) and reclaims items whose ``TTL``
attribute has passed on its own schedule. Reads may therefore still see
expired items; filtering them is the repository's job.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional

from session_service.storage.codec import Item


class SessionTableBackend(ABC):
    """Abstract base class for session table backends"""

    name: str = "abstract"

    async def open(self) -> None:
        """Acquire backend resources (clients, connections)"""

    async def close(self) -> None:
        """Release backend resources"""

    async def __aenter__(self) -> "SessionTableBackend":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @abstractmethod
    async def put_item(self, item: Item, *, now: int) -> None:
        """
        Store an item unless a live item already holds its key.

        An existing item whose TTL is at or before ``now`` counts as absent
        and is overwritten.

        Raises:
            ItemAlreadyExists: If a live item holds the key
            StorageError: On backend failure
        """

    @abstractmethod
    async def get_item(self, key: str) -> Optional[Item]:
        """
        Strongly consistent read by primary key.

        Returns:
            The stored item, or None if there is none

        Raises:
            StorageError: On backend failure
        """

    @abstractmethod
    def query_by_username(self, username: str) -> AsyncIterator[Item]:
        """
        Iterate over every item indexed under ``username``.

        The index is eventually consistent and may miss very recent writes.

        Raises:
            StorageError: On backend failure
        """

    @abstractmethod
    async def delete_item(self, key: str) -> None:
        """
        Delete an item by primary key. Deleting a missing key is not an error.

        Raises:
            StorageError: On backend failure
        """

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """
        Report backend health.

        Returns a dict with at least ``type``, ``healthy`` and ``message``.
        Never raises.
        """
