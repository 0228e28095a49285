"""
Mapping between Session models and stored table items.

Items are plain dicts of Python values. The DynamoDB backend converts them to
and from the typed attribute-value wire format with boto3's type
(de)serialisers, so numbers come back as ``Decimal``.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from session_service.core.exceptions import StorageError
from session_service.core.schemas.session import Session

# Indexing attributes
PRIMARY_KEY = "PK"
USERNAME_KEY = "GSI1PK"
TTL_KEY = "TTL"

Item = Dict[str, Any]

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def session_to_item(session: Session) -> Item:
    """Build the stored item for a session, including index and TTL attributes"""
    return {
        PRIMARY_KEY: session.session_id,
        USERNAME_KEY: session.username,
        TTL_KEY: session.expires_at,
        "id": session.session_id,
        "username": session.username,
        "payload": session.payload,
        "created_at": session.created_at,
        "expires_at": session.expires_at,
    }


def item_to_session(item: Item) -> Session:
    """
    Rebuild a Session from a stored item.

    Raises:
        StorageError: If the item is missing attributes or holds bad values
    """
    try:
        return Session(
            session_id=_get_str(item, "id"),
            username=_get_str(item, "username"),
            payload=_get_str(item, "payload"),
            created_at=_get_int(item, "created_at"),
            expires_at=_get_int(item, "expires_at"),
        )
    except (KeyError, TypeError, ValueError, OverflowError) as e:
        raise StorageError(f"Corrupt session item: {e}", operation="decode") from e


def item_expiry(item: Item) -> Optional[int]:
    """
    Expiry of a raw item, or None when the TTL attribute is missing.

    Raises:
        StorageError: If the TTL attribute is not a number
    """
    if item.get(TTL_KEY) is None:
        return None
    try:
        return _get_int(item, TTL_KEY)
    except (TypeError, ValueError, OverflowError) as e:
        raise StorageError(f"Corrupt session item: {e}", operation="decode") from e


def to_attribute_values(item: Item) -> Dict[str, Dict[str, Any]]:
    """Serialise a plain item to DynamoDB attribute values"""
    return {key: _serializer.serialize(value) for key, value in item.items()}


def from_attribute_values(attributes: Dict[str, Dict[str, Any]]) -> Item:
    """Deserialise DynamoDB attribute values to a plain item"""
    return {key: _deserializer.deserialize(value) for key, value in attributes.items()}


def _get_str(item: Item, key: str) -> str:
    value = item[key]
    if not isinstance(value, str):
        raise TypeError(f"attribute {key!r} is not a string")
    return value


def _get_int(item: Item, key: str) -> int:
    value = item[key]
    if isinstance(value, bool) or not isinstance(value, (int, Decimal)):
        raise TypeError(f"attribute {key!r} is not a number")
    return int(value)
