"""Lambda handler for invoice extraction, triggered by document uploads."""

import json
import os
import logging
from typing import Dict, Any
import sys

# Add parent directory to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from shared.exceptions import ConflictError, NotFoundError
from invoices.lifecycle import InvoiceLifecycleManager
from invoices.models import parse_document_key

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO'))

# Built on first use
lifecycle = None


def get_lifecycle() -> InvoiceLifecycleManager:
    global lifecycle
    if lifecycle is None:
        lifecycle = InvoiceLifecycleManager()
    return lifecycle


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for invoice extraction.

    Triggered by S3 uploads under the invoices/ prefix. Each document is run
    through extraction and its invoice ends COMPLETED or FAILED. Unexpected
    errors are raised so the trigger redelivers the event.

    Args:
        event: S3 event
        context: Lambda context

    Returns:
        Processing result per document
    """
    logger.info(f"Extraction triggered: {json.dumps(event)}")

    results = [process_record(record) for record in event.get('Records', [])]

    return {
        'statusCode': 200,
        'body': json.dumps({'message': 'Processing complete', 'results': results})
    }


def process_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Process a single S3 event record.

    Args:
        record: S3 event record

    Returns:
        Outcome summary for the document
    """
    key = record['s3']['object']['key']
    parsed = parse_document_key(key)

    if parsed is None:
        logger.error(f"Invalid S3 key format: {key}")
        return {'key': key, 'outcome': 'ignored'}

    user_id, invoice_id = parsed
    logger.info(f"Processing invoice {invoice_id} for user {user_id}")

    try:
        invoice = get_lifecycle().process_document(user_id, invoice_id)
    except NotFoundError as e:
        logger.error(f"No invoice record for document {key}: {e.message}")
        return {'key': key, 'invoiceId': invoice_id, 'outcome': 'not_found'}
    except ConflictError as e:
        # Another delivery settled it first
        logger.info(f"Invoice {invoice_id} already handled: {e.message}")
        return {'key': key, 'invoiceId': invoice_id, 'outcome': 'already_handled'}

    return {'key': key, 'invoiceId': invoice_id, 'outcome': invoice.status}
