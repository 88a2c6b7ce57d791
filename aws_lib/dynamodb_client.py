import logging
import re
import uuid
from decimal import Decimal

from botocore.exceptions import ClientError

from canteen.errors import ConflictError, TransactionCancelled, TransientError
from .base_client import AWSBaseClient, CONNECTION_ERRORS, is_transient, with_backoff

logger = logging.getLogger(__name__)

_REASONS_IN_MESSAGE = re.compile(r"\[([^\]]*)\]")


class DynamoDBClient(AWSBaseClient):
    def __init__(self):
        super().__init__("dynamodb")

    def _deserialize(self, value):
        """Convert DynamoDB data into plain Python types."""
        if isinstance(value, dict):
            return {k: self._deserialize(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._deserialize(v) for v in value]
        if isinstance(value, Decimal):
            return int(value) if value % 1 == 0 else float(value)
        return value

    # int/float to decimal
    def _convert_to_decimal(self, data):
        """Recursively convert numbers to Decimal for DynamoDB writes."""
        if isinstance(data, dict):
            return {k: self._convert_to_decimal(v) for k, v in data.items()}
        if isinstance(data, list):
            return [self._convert_to_decimal(v) for v in data]
        if isinstance(data, bool):
            return data
        if isinstance(data, int):
            return Decimal(data)
        if isinstance(data, float):
            return Decimal(str(data))
        return data

    def _call(self, fn, **kwargs):
        """Run one DynamoDB call, translating botocore failures."""
        try:
            return fn(**kwargs)
        except CONNECTION_ERRORS as e:
            raise TransientError(f"DynamoDB unreachable: {e}") from e
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if is_transient(e):
                raise TransientError(f"DynamoDB {code}") from e
            if code == "ConditionalCheckFailedException":
                raise ConflictError("Condition check failed") from e
            if code == "TransactionCanceledException":
                raise TransactionCancelled(self._cancellation_reasons(e)) from e
            raise

    @staticmethod
    def _cancellation_reasons(error):
        reasons = error.response.get("CancellationReasons")
        if reasons:
            return [r.get("Code", "None") for r in reasons]
        # older endpoints only spell the reasons out in the message
        found = _REASONS_IN_MESSAGE.search(error.response.get("Error", {}).get("Message", ""))
        if not found:
            return []
        return [r.strip() for r in found.group(1).split(",")]

# CURD

    def put(self, table, item, condition=None, names=None, values=None):
        tbl = self.resource.Table(table)
        kwargs = {"Item": self._convert_to_decimal(item)}
        kwargs.update(self._expression_kwargs(condition, names, values))
        return self._call(tbl.put_item, **kwargs)

    def get(self, table, key):
        tbl = self.resource.Table(table)
        resp = self._call(tbl.get_item, Key=key, ConsistentRead=True)
        item = resp.get("Item")
        return self._deserialize(item) if item else {}

    def scan(self, table, consistent=False):
        tbl = self.resource.Table(table)
        items = []
        kwargs = {"ConsistentRead": True} if consistent else {}
        while True:
            resp = self._call(tbl.scan, **kwargs)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
        return [self._deserialize(i) for i in items]

    def update(self, table, key, update_expression, condition=None, names=None, values=None):
        """
        Conditional update; returns the item as it is after the update.
        Raises ConflictError when the condition does not hold.
        """
        tbl = self.resource.Table(table)
        kwargs = {
            "Key": key,
            "UpdateExpression": update_expression,
            "ReturnValues": "ALL_NEW",
        }
        kwargs.update(self._expression_kwargs(condition, names, values))
        resp = self._call(tbl.update_item, **kwargs)
        return self._deserialize(resp.get("Attributes", {}))

    def delete(self, table, key, condition=None, names=None, values=None):
        """
        Delete an item from the DynamoDB table.
        Raises ConflictError when the condition does not hold.
        """
        tbl = self.resource.Table(table)
        kwargs = {"Key": key}
        kwargs.update(self._expression_kwargs(condition, names, values))
        return self._call(tbl.delete_item, **kwargs)

    def transact_write(self, items):
        """
        Write all `items` or none of them.

        Items are TransactWriteItems entries in high-level form, e.g.
        {"Put": {"TableName": ..., "Item": {...}, "ConditionExpression": ...}}.
        Transient failures are retried with backoff under one
        ClientRequestToken, so a retry never applies the writes twice.
        """
        client = self.resource.meta.client
        request_token = uuid.uuid4().hex
        clean_items = self._convert_to_decimal(items)

        def attempt():
            return self._call(
                client.transact_write_items,
                TransactItems=clean_items,
                ClientRequestToken=request_token,
            )

        return with_backoff(attempt)

    def _expression_kwargs(self, condition, names, values):
        kwargs = {}
        if condition:
            kwargs["ConditionExpression"] = condition
        if names:
            kwargs["ExpressionAttributeNames"] = names
        if values:
            kwargs["ExpressionAttributeValues"] = self._convert_to_decimal(values)
        return kwargs
