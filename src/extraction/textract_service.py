"""AWS Textract service for invoice field extraction."""

import os
import boto3
from typing import Any, Dict, List, Optional
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, ReadTimeoutError
import logging

from shared.exceptions import ExternalServiceError
from extraction.service import ExtractionService

logger = logging.getLogger(__name__)

AMOUNT_FIELDS = ['TOTAL', 'AMOUNT_PAID', 'AMOUNT_DUE']
DATE_FIELDS = ['INVOICE_RECEIPT_DATE', 'ORDER_DATE', 'DATE']
VENDOR_FIELDS = ['VENDOR_NAME', 'NAME']


class TextractService(ExtractionService):
    """AWS Textract AnalyzeExpense wrapper for invoice documents."""

    def __init__(self, bucket_name: Optional[str] = None, client: Any = None):
        """
        Initialize Textract client.

        Args:
            bucket_name: Bucket holding the invoice documents
            client: Optional boto3 Textract client to reuse
        """
        self.bucket_name = bucket_name or os.environ.get('INVOICES_BUCKET')
        if not self.bucket_name:
            raise ExternalServiceError("Invoice bucket is not configured")

        self.timeout = float(os.environ.get('EXTRACTION_TIMEOUT_SECONDS', '30'))
        self.confidence_threshold = float(
            os.environ.get('TEXTRACT_CONFIDENCE_THRESHOLD', '0')
        )

        if client is None:
            # The call is bounded; a timeout is reported like any other failure
            config = Config(
                connect_timeout=self.timeout,
                read_timeout=self.timeout,
                retries={'max_attempts': 1, 'mode': 'standard'}
            )

            # Support for LocalStack
            endpoint_url = os.environ.get('LOCALSTACK_ENDPOINT')
            if endpoint_url and os.environ.get('USE_LOCALSTACK', 'false').lower() == 'true':
                client = boto3.client('textract', endpoint_url=endpoint_url, config=config)
            else:
                client = boto3.client('textract', config=config)

        self.client = client

    def extract(self, document_key: str) -> Dict[str, Any]:
        """
        Analyze an invoice document using Textract.

        Args:
            document_key: S3 object key in the invoices bucket

        Returns:
            Raw extracted fields: amount, date, vendor_name, currency

        Raises:
            ExternalServiceError: If Textract fails or times out
        """
        logger.info(f"Analyzing invoice document: s3://{self.bucket_name}/{document_key}")

        try:
            response = self.client.analyze_expense(
                Document={
                    'S3Object': {
                        'Bucket': self.bucket_name,
                        'Name': document_key
                    }
                }
            )
        except (ReadTimeoutError, ConnectTimeoutError) as e:
            logger.error(f"Textract analysis timed out after {self.timeout}s: {e}")
            raise ExternalServiceError(f"Textract analysis timed out: {str(e)}")
        except ClientError as e:
            error_code = e.response['Error']['Code']
            logger.error(f"Textract analysis failed: {error_code}")
            raise ExternalServiceError(f"Textract analysis failed: {error_code}")
        except BotoCoreError as e:
            logger.error(f"Textract call failed: {e}")
            raise ExternalServiceError(f"Textract call failed: {str(e)}")

        expense_documents = response.get('ExpenseDocuments', [])

        if not expense_documents:
            logger.warning("No expense documents found")
            return self._empty_result()

        result = self._extract_summary_fields(expense_documents[0].get('SummaryFields', []))
        logger.info(f"Extracted invoice fields: {result}")
        return result

    def _extract_summary_fields(self, summary_fields: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Pick amount, date, vendor and currency out of Textract summary fields.

        When several fields of a group are present, the earlier entry in the
        group list wins (TOTAL over AMOUNT_PAID, and so on).
        """
        found = {}

        for field in summary_fields:
            field_type = field.get('Type', {}).get('Text', '')
            value_detection = field.get('ValueDetection', {})
            value = value_detection.get('Text', '')
            confidence = value_detection.get('Confidence', 0)

            if not value or confidence < self.confidence_threshold:
                continue

            # First occurrence of a type wins
            if field_type not in found:
                found[field_type] = {
                    'text': value,
                    'currency': field.get('Currency', {}).get('Code')
                }

        amount_field = self._first_of(found, AMOUNT_FIELDS)
        date_field = self._first_of(found, DATE_FIELDS)
        vendor_field = self._first_of(found, VENDOR_FIELDS)

        return {
            'amount': amount_field['text'] if amount_field else None,
            'date': date_field['text'] if date_field else None,
            'vendor_name': vendor_field['text'] if vendor_field else None,
            'currency': amount_field['currency'] if amount_field else None
        }

    @staticmethod
    def _first_of(found: Dict[str, Dict[str, Any]], field_types: List[str]) -> Optional[Dict[str, Any]]:
        for field_type in field_types:
            if field_type in found:
                return found[field_type]
        return None

    @staticmethod
    def _empty_result() -> Dict[str, Any]:
        """Return empty result structure."""
        return {
            'amount': None,
            'date': None,
            'vendor_name': None,
            'currency': None
        }
