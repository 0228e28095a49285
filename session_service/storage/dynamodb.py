"""
DynamoDB session table backend (Async).

Table layout: hash key ``PK`` (session id), global secondary index ``GSI1`` on
``GSI1PK`` (username) and TTL enabled on the numeric ``TTL`` attribute.
"""

import logging
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Optional

import aiobotocore.session
from aiobotocore.config import AioConfig
from botocore.exceptions import BotoCoreError, ClientError

from session_service.core.exceptions import ItemAlreadyExists, StorageError
from session_service.storage.base import SessionTableBackend
from session_service.storage.codec import (
    PRIMARY_KEY,
    TTL_KEY,
    USERNAME_KEY,
    Item,
    from_attribute_values,
    to_attribute_values,
)

if TYPE_CHECKING:
    from types_aiobotocore_dynamodb import DynamoDBClient

logger = logging.getLogger(__name__)


class DynamoDBTableBackend(SessionTableBackend):
    """Session table backed by Amazon DynamoDB through aiobotocore"""

    name = "dynamodb"

    def __init__(
        self,
        table_name: str,
        *,
        index_name: str = "GSI1",
        region: str = "eu-west-1",
        endpoint_url: Optional[str] = None,
        connect_timeout: float = 2.0,
        read_timeout: float = 5.0,
        max_attempts: int = 1,
        session: Optional[aiobotocore.session.AioSession] = None,
    ):
        """Initialize the backend

        Args:
            table_name: DynamoDB table holding the sessions
            index_name: Global secondary index keyed on username
            region: AWS region of the table
            endpoint_url: Optional endpoint override (e.g. DynamoDB Local)
            connect_timeout: botocore connect timeout in seconds
            read_timeout: botocore read timeout in seconds
            max_attempts: botocore attempts per call, 1 disables SDK retries
            session: Optional aiobotocore session, a new one by default
        """
        self.table_name = table_name
        self.index_name = index_name
        self.region = region
        self.endpoint_url = endpoint_url
        self._config = AioConfig(
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            retries={"max_attempts": max_attempts, "mode": "standard"},
        )
        self._session = session or aiobotocore.session.get_session()
        self._exit_stack: Optional[AsyncExitStack] = None
        self._client: Optional["DynamoDBClient"] = None

    async def open(self) -> None:
        if self._client is not None:
            return
        logger.info(
            f"Opening DynamoDB client for table {self.table_name} in {self.region}"
        )
        exit_stack = AsyncExitStack()
        client_kwargs: Dict[str, Any] = {
            "service_name": "dynamodb",
            "region_name": self.region,
            "config": self._config,
        }
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url
        self._client = await exit_stack.enter_async_context(
            self._session.create_client(**client_kwargs)
        )
        self._exit_stack = exit_stack

    async def close(self) -> None:
        if self._exit_stack is None:
            return
        try:
            await self._exit_stack.aclose()
        finally:
            self._exit_stack = None
            self._client = None
            logger.info("DynamoDB client closed")

    @property
    def client(self) -> "DynamoDBClient":
        if self._client is None:
            raise StorageError("DynamoDB client is not open", operation="client")
        return self._client

    async def put_item(self, item: Item, *, now: int) -> None:
        try:
            await self.client.put_item(
                TableName=self.table_name,
                Item=to_attribute_values(item),
                # An expired item that TTL has not reclaimed yet may be replaced
                ConditionExpression="attribute_not_exists(#pk) OR #ttl <= :now",
                ExpressionAttributeNames={"#pk": PRIMARY_KEY, "#ttl": TTL_KEY},
                ExpressionAttributeValues={":now": {"N": str(now)}},
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                raise ItemAlreadyExists(item[PRIMARY_KEY]) from e
            raise _storage_error("put_item", e) from e
        except BotoCoreError as e:
            raise _storage_error("put_item", e) from e

    async def get_item(self, key: str) -> Optional[Item]:
        try:
            response = await self.client.get_item(
                TableName=self.table_name,
                Key={PRIMARY_KEY: {"S": key}},
                ConsistentRead=True,
            )
        except (ClientError, BotoCoreError) as e:
            raise _storage_error("get_item", e) from e

        attributes = response.get("Item")
        if not attributes:
            return None
        return from_attribute_values(attributes)

    async def query_by_username(self, username: str) -> AsyncIterator[Item]:
        paginator = self.client.get_paginator("query")
        try:
            async for page in paginator.paginate(
                TableName=self.table_name,
                IndexName=self.index_name,
                KeyConditionExpression="#username = :username",
                ProjectionExpression="#pk, #ttl",
                ExpressionAttributeNames={
                    "#username": USERNAME_KEY,
                    "#pk": PRIMARY_KEY,
                    "#ttl": TTL_KEY,
                },
                ExpressionAttributeValues={":username": {"S": username}},
            ):
                logger.debug(f"Index page returned {page.get('Count', 0)} items")
                for attributes in page.get("Items", []):
                    yield from_attribute_values(attributes)
        except (ClientError, BotoCoreError) as e:
            raise _storage_error("query", e) from e

    async def delete_item(self, key: str) -> None:
        try:
            await self.client.delete_item(
                TableName=self.table_name,
                Key={PRIMARY_KEY: {"S": key}},
            )
        except (ClientError, BotoCoreError) as e:
            raise _storage_error("delete_item", e) from e

    async def health_check(self) -> Dict[str, Any]:
        try:
            response = await self.client.describe_table(TableName=self.table_name)
        except (StorageError, ClientError, BotoCoreError) as e:
            logger.warning(f"DynamoDB health check failed: {str(e)}")
            return {
                "type": self.name,
                "healthy": False,
                "message": f"DynamoDB table check failed: {str(e)}",
            }

        table = response.get("Table", {})
        status = table.get("TableStatus", "UNKNOWN")
        index_names = [
            index.get("IndexName") for index in table.get("GlobalSecondaryIndexes", [])
        ]
        healthy = status == "ACTIVE" and self.index_name in index_names
        message = f"Table {self.table_name} is {status}"
        if self.index_name not in index_names:
            message += f", index {self.index_name} is missing"
        return {
            "type": self.name,
            "healthy": healthy,
            "message": message,
            "table": self.table_name,
        }


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "Unknown")


def _storage_error(operation: str, error: Exception) -> StorageError:
    if isinstance(error, ClientError):
        detail = f"{_error_code(error)}: {error.response.get('Error', {}).get('Message', '')}"
    else:
        detail = str(error)
    logger.error(f"DynamoDB {operation} failed: {detail}")
    return StorageError(f"Session storage unavailable ({operation})", operation=operation)
