# storesync/core/database.py
import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from storesync.core.settings import settings
from storesync.shared.exceptions import StoreCapacityError, StoreError

logger = logging.getLogger(__name__)

# DynamoDB BatchWriteItem accepts at most 25 put requests per call
MAX_BATCH_ITEMS = 25

CAPACITY_ERROR_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
}


def to_dynamo(value: Any) -> Any:
    """Convert floats (rejected by DynamoDB) to Decimal, recursively."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dynamo(v) for v in value]
    return value


def _translate(error: Exception, context: str) -> StoreError:
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "")
        if code in CAPACITY_ERROR_CODES:
            return StoreCapacityError(f"{context}: {code}")
        return StoreError(f"{context}: {code} {error}")
    return StoreError(f"{context}: {error}")


class KeyValueStore:
    """
    Async facade over DynamoDB tables.

    boto3 is blocking, so every request runs in a worker thread and the
    event loop stays free during store I/O.
    """

    def __init__(self, resource: Any = None, region: Optional[str] = None) -> None:
        self.resource = resource or boto3.resource(
            "dynamodb", region_name=region or settings.AWS_REGION
        )

    def _table(self, table: str) -> Any:
        return self.resource.Table(table)

    async def put_item(self, table: str, item: Dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self._table(table).put_item, Item=to_dynamo(item))
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, f"put_item on {table}")

    async def get_item(
        self, table: str, key: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        try:
            response = await asyncio.to_thread(self._table(table).get_item, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, f"get_item on {table}")
        return response.get("Item")

    async def batch_write(
        self, table: str, items: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """
        Write up to 25 items in a single BatchWriteItem request.

        Args:
            table: Destination table name
            items: Items to put

        Returns:
            Items the store reported as unprocessed (empty when all succeeded)

        Raises:
            ValueError: If more than 25 items are supplied
            StoreCapacityError: When the table's throughput is exceeded
            StoreError: For any other store failure
        """
        if len(items) > MAX_BATCH_ITEMS:
            raise ValueError(
                f"batch_write accepts at most {MAX_BATCH_ITEMS} items, got {len(items)}"
            )
        if not items:
            return []

        request = {table: [{"PutRequest": {"Item": to_dynamo(i)}} for i in items]}
        try:
            response = await asyncio.to_thread(
                self.resource.batch_write_item, RequestItems=request
            )
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, f"batch_write on {table}")

        unprocessed = (response.get("UnprocessedItems") or {}).get(table) or []
        return [
            entry["PutRequest"]["Item"] for entry in unprocessed if "PutRequest" in entry
        ]

    async def put_item_if(
        self,
        table: str,
        item: Dict[str, Any],
        condition: str,
        values: Dict[str, Any],
    ) -> bool:
        """Conditional put. Returns False when the condition does not hold."""
        try:
            await asyncio.to_thread(
                self._table(table).put_item,
                Item=to_dynamo(item),
                ConditionExpression=condition,
                ExpressionAttributeValues=to_dynamo(values),
            )
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return False
            raise _translate(e, f"put_item_if on {table}")
        except BotoCoreError as e:
            raise _translate(e, f"put_item_if on {table}")

    async def delete_item_if(
        self,
        table: str,
        key: Dict[str, Any],
        condition: str,
        values: Dict[str, Any],
    ) -> bool:
        """Conditional delete. Returns False when the condition does not hold."""
        try:
            await asyncio.to_thread(
                self._table(table).delete_item,
                Key=key,
                ConditionExpression=condition,
                ExpressionAttributeValues=to_dynamo(values),
            )
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return False
            raise _translate(e, f"delete_item_if on {table}")
        except BotoCoreError as e:
            raise _translate(e, f"delete_item_if on {table}")


_store: Optional[KeyValueStore] = None


def get_store() -> KeyValueStore:
    """Shared store instance, built on first use."""
    global _store
    if _store is None:
        _store = KeyValueStore()
    return _store
