"""DynamoDB-backed metadata index."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..config import IndexConfig
from ..errors import ConditionFailedError, TransientError
from .index import SECONDARY_INDEX, Item, MetadataIndex, Page

logger = logging.getLogger(__name__)

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def build_dynamodb_client(config: IndexConfig):
    return boto3.client(
        "dynamodb",
        region_name=config.region,
        endpoint_url=config.endpoint_url,
        config=BotoConfig(
            connect_timeout=config.connect_timeout_seconds,
            read_timeout=config.read_timeout_seconds,
            retries={"max_attempts": config.max_attempts, "mode": "standard"},
        ),
    )


def serialize_item(item: Item) -> Dict[str, Any]:
    return {attr: _serializer.serialize(value) for attr, value in item.items()}


def deserialize_item(raw: Dict[str, Any]) -> Item:
    return {attr: _deserializer.deserialize(value) for attr, value in raw.items()}


class DynamoIndex(MetadataIndex):
    def __init__(self, client: Any, table_name: str) -> None:
        self.client = client
        self.table_name = table_name

    @classmethod
    def from_config(cls, config: IndexConfig) -> "DynamoIndex":
        return cls(build_dynamodb_client(config), config.table_name)

    def get(self, pk: str, sk: str) -> Optional[Item]:
        response = self._call(
            "get_item",
            TableName=self.table_name,
            Key=serialize_item({"PK": pk, "SK": sk}),
            ConsistentRead=True,
        )
        raw = response.get("Item")
        return deserialize_item(raw) if raw else None

    def put(self, item: Item, *, if_absent: bool = False, expect: Optional[Dict[str, Any]] = None) -> None:
        params: Dict[str, Any] = {"TableName": self.table_name, "Item": serialize_item(item)}
        conditions = []
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        if if_absent:
            conditions.append("attribute_not_exists(PK)")
        for position, (attr, value) in enumerate(sorted((expect or {}).items())):
            names[f"#e{position}"] = attr
            values[f":e{position}"] = _serializer.serialize(value)
            conditions.append(f"#e{position} = :e{position}")
        if conditions:
            params["ConditionExpression"] = " AND ".join(conditions)
        if names:
            params["ExpressionAttributeNames"] = names
            params["ExpressionAttributeValues"] = values
        self._call("put_item", **params)

    def delete(self, pk: str, sk: str) -> None:
        self._call("delete_item", TableName=self.table_name, Key=serialize_item({"PK": pk, "SK": sk}))

    def query(
        self,
        pk: str,
        *,
        prefix: Optional[str] = None,
        between: Optional[Tuple[str, str]] = None,
        index: Optional[str] = None,
        limit: Optional[int] = None,
        start_key: Optional[Item] = None,
    ) -> Page:
        pk_attr, sk_attr = ("GSI1PK", "GSI1SK") if index == SECONDARY_INDEX else ("PK", "SK")
        names = {"#pk": pk_attr}
        values: Dict[str, Any] = {":pk": {"S": pk}}
        expression = "#pk = :pk"
        if prefix is not None:
            names["#sk"] = sk_attr
            values[":prefix"] = {"S": prefix}
            expression += " AND begins_with(#sk, :prefix)"
        elif between is not None:
            names["#sk"] = sk_attr
            values[":lower"] = {"S": between[0]}
            values[":upper"] = {"S": between[1]}
            expression += " AND #sk BETWEEN :lower AND :upper"
        params: Dict[str, Any] = {
            "TableName": self.table_name,
            "KeyConditionExpression": expression,
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
        }
        if index:
            params["IndexName"] = index
        else:
            params["ConsistentRead"] = True
        if limit:
            params["Limit"] = limit
        if start_key:
            params["ExclusiveStartKey"] = serialize_item(start_key)
        return self._page(self._call("query", **params))

    def scan(
        self,
        *,
        item_type: Optional[str] = None,
        limit: Optional[int] = None,
        start_key: Optional[Item] = None,
    ) -> Page:
        params: Dict[str, Any] = {"TableName": self.table_name}
        if item_type is not None:
            params["FilterExpression"] = "#type = :type"
            params["ExpressionAttributeNames"] = {"#type": "type"}
            params["ExpressionAttributeValues"] = {":type": {"S": item_type}}
        if limit:
            params["Limit"] = limit
        if start_key:
            params["ExclusiveStartKey"] = serialize_item(start_key)
        return self._page(self._call("scan", **params))

    @staticmethod
    def _page(response: Dict[str, Any]) -> Page:
        items = [deserialize_item(raw) for raw in response.get("Items", [])]
        last = response.get("LastEvaluatedKey")
        return Page(items=items, next_key=deserialize_item(last) if last else None)

    def _call(self, operation: str, **params: Any) -> Dict[str, Any]:
        try:
            return getattr(self.client, operation)(**params)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code == "ConditionalCheckFailedException":
                raise ConditionFailedError(f"{operation} condition failed on {self.table_name}") from exc
            logger.warning("DynamoDB %s failed on %s: %s", operation, self.table_name, code)
            raise TransientError(f"DynamoDB {operation} failed: {code}") from exc
        except BotoCoreError as exc:
            logger.warning("DynamoDB %s unavailable on %s: %s", operation, self.table_name, exc)
            raise TransientError(f"DynamoDB {operation} unavailable: {exc}") from exc
