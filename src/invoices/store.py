"""Invoice record store backed by the invoices DynamoDB table."""

import os
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from boto3.dynamodb.conditions import Attr, Key

from shared.dynamodb import DynamoDBClient

logger = logging.getLogger(__name__)


class InvoiceStore(ABC):
    """Keyed collection of invoice records, partitioned by owner."""

    @abstractmethod
    def put(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a new record; ConflictError if the key already exists."""

    @abstractmethod
    def get(self, user_id: str, invoice_id: str) -> Optional[Dict[str, Any]]:
        """Return the record or None."""

    @abstractmethod
    def query_by_owner(self, user_id: str) -> List[Dict[str, Any]]:
        """Return every record of one owner."""

    @abstractmethod
    def conditional_update(
        self,
        user_id: str,
        invoice_id: str,
        updates: Dict[str, Any],
        allowed_statuses: Iterable[str]
    ) -> Dict[str, Any]:
        """
        Set fields on a record only if its current status is one of allowed_statuses.

        Returns the updated record; raises ConflictError when the record is
        missing or its status does not match.
        """


class DynamoInvoiceStore(InvoiceStore):
    """InvoiceStore on DynamoDB: hash key user_id, range key invoice_id."""

    def __init__(self, table: Optional[DynamoDBClient] = None):
        self.table = table or DynamoDBClient(os.environ.get('INVOICES_TABLE'))

    def put(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return self.table.put_item(
            record,
            condition_expression=Attr('invoice_id').not_exists()
        )

    def get(self, user_id: str, invoice_id: str) -> Optional[Dict[str, Any]]:
        return self.table.get_item({'user_id': user_id, 'invoice_id': invoice_id})

    def query_by_owner(self, user_id: str) -> List[Dict[str, Any]]:
        items = self.table.query_all(Key('user_id').eq(user_id))
        logger.info(f"Fetched {len(items)} invoices for user {user_id}")
        return items

    def conditional_update(
        self,
        user_id: str,
        invoice_id: str,
        updates: Dict[str, Any],
        allowed_statuses: Iterable[str]
    ) -> Dict[str, Any]:
        update_parts = []
        expr_values = {}
        expr_names = {'#status': 'status'}

        for field, value in updates.items():
            update_parts.append(f"#{field} = :{field}")
            expr_names[f'#{field}'] = field
            expr_values[f':{field}'] = value

        allowed_placeholders = []
        for index, status in enumerate(allowed_statuses):
            placeholder = f':allowed{index}'
            allowed_placeholders.append(placeholder)
            expr_values[placeholder] = getattr(status, 'value', status)

        condition = (
            f"attribute_exists(invoice_id) AND #status IN ({', '.join(allowed_placeholders)})"
        )

        return self.table.update_item(
            key={'user_id': user_id, 'invoice_id': invoice_id},
            update_expression="SET " + ", ".join(update_parts),
            expression_values=expr_values,
            expression_names=expr_names,
            condition_expression=condition
        )
