"""DynamoDB utilities and helper functions."""

import os
import boto3
from typing import Any, Dict, List, Optional, Tuple
from decimal import Decimal
from botocore.exceptions import ClientError
import logging

from .exceptions import ConflictError, DatabaseError

logger = logging.getLogger(__name__)

CONDITIONAL_CHECK_FAILED = 'ConditionalCheckFailedException'


class DynamoDBClient:
    """DynamoDB table wrapper with common operations."""

    def __init__(self, table_name: str, dynamodb: Any = None):
        """
        Initialize DynamoDB client.

        Args:
            table_name: Name of the DynamoDB table
            dynamodb: Optional boto3 DynamoDB resource to reuse
        """
        if not table_name:
            raise DatabaseError("DynamoDB table name is not configured")

        self.table_name = table_name

        if dynamodb is None:
            # Support for LocalStack
            endpoint_url = os.environ.get('LOCALSTACK_ENDPOINT')
            if endpoint_url and os.environ.get('USE_LOCALSTACK', 'false').lower() == 'true':
                dynamodb = boto3.resource('dynamodb', endpoint_url=endpoint_url)
            else:
                dynamodb = boto3.resource('dynamodb')

        self.dynamodb = dynamodb
        self.table = self.dynamodb.Table(table_name)

    def put_item(
        self,
        item: Dict[str, Any],
        condition_expression: Optional[Any] = None
    ) -> Dict[str, Any]:
        """
        Put an item in the table.

        Args:
            item: Item to put
            condition_expression: Optional condition the write depends on

        Returns:
            The item that was put

        Raises:
            ConflictError: If the condition does not hold
            DatabaseError: If the operation fails
        """
        item = self._python_to_dynamodb(item)
        kwargs = {'Item': item}
        if condition_expression is not None:
            kwargs['ConditionExpression'] = condition_expression

        try:
            self.table.put_item(**kwargs)
            return item
        except ClientError as e:
            if _is_conditional_failure(e):
                raise ConflictError("Item already exists")
            logger.error(f"Error putting item: {e}")
            raise DatabaseError(f"Failed to put item: {str(e)}")

    def get_item(self, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Get an item from the table with a strongly consistent read.

        Args:
            key: Primary key of the item

        Returns:
            The item if found, None otherwise

        Raises:
            DatabaseError: If the operation fails
        """
        try:
            response = self.table.get_item(Key=key, ConsistentRead=True)
            item = response.get('Item')
            if item:
                return self._dynamodb_to_python(item)
            return None
        except ClientError as e:
            logger.error(f"Error getting item: {e}")
            raise DatabaseError(f"Failed to get item: {str(e)}")

    def update_item(
        self,
        key: Dict[str, Any],
        update_expression: str,
        expression_values: Dict[str, Any],
        expression_names: Optional[Dict[str, str]] = None,
        condition_expression: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Update an item in the table.

        Args:
            key: Primary key of the item
            update_expression: Update expression
            expression_values: Expression attribute values
            expression_names: Optional expression attribute names
            condition_expression: Optional condition checked by DynamoDB

        Returns:
            Updated item

        Raises:
            ConflictError: If the condition does not hold
            DatabaseError: If the operation fails
        """
        kwargs = {
            'Key': key,
            'UpdateExpression': update_expression,
            'ExpressionAttributeValues': self._python_to_dynamodb(expression_values),
            'ReturnValues': 'ALL_NEW'
        }

        if expression_names:
            kwargs['ExpressionAttributeNames'] = expression_names
        if condition_expression:
            kwargs['ConditionExpression'] = condition_expression

        try:
            response = self.table.update_item(**kwargs)
            return self._dynamodb_to_python(response['Attributes'])
        except ClientError as e:
            if _is_conditional_failure(e):
                raise ConflictError(f"Conditional update rejected for {key}")
            logger.error(f"Error updating item: {e}")
            raise DatabaseError(f"Failed to update item: {str(e)}")

    def query_page(
        self,
        key_condition_expression: Any,
        limit: int,
        start_key: Optional[Dict[str, Any]] = None
    ) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
        """
        Read one page of a key-condition query.

        Returns:
            (items, key to resume from or None on the last page)

        Raises:
            DatabaseError: If the operation fails
        """
        kwargs = {
            'KeyConditionExpression': key_condition_expression,
            'Limit': limit
        }
        if start_key:
            kwargs['ExclusiveStartKey'] = start_key

        try:
            response = self.table.query(**kwargs)
        except ClientError as e:
            logger.error(f"Error querying items: {e}")
            raise DatabaseError(f"Failed to query items: {str(e)}")

        items = [self._dynamodb_to_python(item) for item in response.get('Items', [])]
        return items, response.get('LastEvaluatedKey')

    def query_all(self, key_condition_expression: Any, page_size: int = 100) -> List[Dict[str, Any]]:
        """Query every page for a key condition and return the combined items."""
        items = []
        page, last_key = self.query_page(key_condition_expression, page_size)
        items.extend(page)

        while last_key:
            page, last_key = self.query_page(key_condition_expression, page_size, last_key)
            items.extend(page)

        return items

    @staticmethod
    def _python_to_dynamodb(obj: Any) -> Any:
        """Convert Python objects to DynamoDB compatible format."""
        if isinstance(obj, dict):
            return {k: DynamoDBClient._python_to_dynamodb(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [DynamoDBClient._python_to_dynamodb(item) for item in obj]
        elif isinstance(obj, float):
            return Decimal(str(obj))
        return obj

    @staticmethod
    def _dynamodb_to_python(obj: Any) -> Any:
        """Convert DynamoDB objects to Python format."""
        if isinstance(obj, dict):
            return {k: DynamoDBClient._dynamodb_to_python(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [DynamoDBClient._dynamodb_to_python(item) for item in obj]
        elif isinstance(obj, Decimal):
            if obj % 1 == 0:
                return int(obj)
            return float(obj)
        return obj


def _is_conditional_failure(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') == CONDITIONAL_CHECK_FAILED
