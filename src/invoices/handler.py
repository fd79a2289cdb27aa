"""Lambda handler for invoice upload operations."""

import json
import os
import logging
from typing import Dict, Any
import sys

from pydantic import ValidationError as PydanticValidationError

# Add parent directory to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from shared.response import (
    success_response,
    error_response,
    exception_response,
    options_response,
    validation_error_response
)
from shared.exceptions import ScanBookException, ValidationError
from invoices.models import UploadLinkRequest, UploadRequest
from invoices.upload import InvoiceUploadService

# Configure logging
logger = logging.getLogger()
logger.setLevel(os.environ.get('LOG_LEVEL', 'INFO'))

# Built on first use
upload_service = None


def get_upload_service() -> InvoiceUploadService:
    global upload_service
    if upload_service is None:
        upload_service = InvoiceUploadService()
    return upload_service


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for invoice uploads.

    Handles:
    - POST /invoices/upload - Upload an invoice document inline (base64)
    - POST /invoices/upload-link - Get a presigned URL to upload a document to

    Args:
        event: Lambda event
        context: Lambda context

    Returns:
        API Gateway response
    """
    try:
        logger.info(f"Request: {event.get('httpMethod')} {event.get('path')}")

        http_method = event.get('httpMethod')
        path = event.get('path')

        if http_method == 'OPTIONS':
            return options_response()

        if path == '/invoices/upload' and http_method == 'POST':
            return handle_upload(event)
        elif path == '/invoices/upload-link' and http_method == 'POST':
            return handle_upload_link(event)
        else:
            return error_response("Route not found", status_code=404, error_kind="NotFoundError")

    except ScanBookException as e:
        logger.error(f"Application error: {str(e)}")
        return exception_response(e)
    except Exception as e:
        logger.error(f"Unexpected error: {str(e)}", exc_info=True)
        return error_response("Internal server error", status_code=500)


def handle_upload(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle inline invoice upload.

    Args:
        event: Lambda event

    Returns:
        API Gateway response
    """
    body = parse_body(event)

    try:
        request = UploadRequest(**body)
    except PydanticValidationError as e:
        return validation_error_response(_describe(e))

    record = get_upload_service().upload_invoice(request)

    logger.info(f"Invoice uploaded successfully: {record['invoice_id']}")
    return success_response(
        data={'invoiceId': record['invoice_id'], 'invoice': record},
        status_code=201
    )


def handle_upload_link(event: Dict[str, Any]) -> Dict[str, Any]:
    """Handle presigned upload link request."""
    body = parse_body(event)

    try:
        request = UploadLinkRequest(**body)
    except PydanticValidationError as e:
        return validation_error_response(_describe(e))

    return success_response(data=get_upload_service().generate_upload_link(request))


def parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """Parse the JSON body; the owner falls back to the Cognito sub claim."""
    try:
        body = json.loads(event.get('body') or '{}')
    except json.JSONDecodeError:
        body = None

    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    if not body.get('userId'):
        user_id = get_user_id(event)
        if user_id:
            body['userId'] = user_id

    return body


def get_user_id(event: Dict[str, Any]) -> str:
    """
    Extract user ID from Cognito authorizer claims.

    Args:
        event: Lambda event

    Returns:
        User ID (sub claim)
    """
    request_context = event.get('requestContext') or {}
    authorizer = request_context.get('authorizer') or {}
    claims = authorizer.get('claims') or {}
    return claims.get('sub')


def _describe(error: PydanticValidationError) -> str:
    fields = []
    for detail in error.errors():
        location = '.'.join(str(part) for part in detail.get('loc', ()))
        fields.append(f"{location}: {detail.get('msg')}")
    return "Invalid request: " + "; ".join(fields)
