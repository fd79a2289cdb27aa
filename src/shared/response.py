"""Response utilities for Lambda functions."""

import json
from typing import Any, Dict, Optional
from datetime import datetime, date
from decimal import Decimal
from enum import Enum


DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,X-Amz-Date,Authorization,X-Api-Key,X-Amz-Security-Token",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS"
}


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder for Decimal, enum and datetime objects."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)


def _build_response(body: Any, status_code: int, headers: Optional[Dict[str, str]]) -> Dict[str, Any]:
    response_headers = dict(DEFAULT_HEADERS)
    if headers:
        response_headers.update(headers)

    return {
        "statusCode": status_code,
        "headers": response_headers,
        "body": json.dumps(body, cls=DecimalEncoder)
    }


def success_response(
    data: Any = None,
    status_code: int = 200,
    headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """
    Create a success response whose body is the serialized data.

    Args:
        data: Response data
        status_code: HTTP status code (default: 200)
        headers: Optional additional headers

    Returns:
        Lambda proxy response dictionary
    """
    return _build_response(data, status_code, headers)


def error_response(
    message: str,
    status_code: int = 500,
    error_kind: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """
    Create an error response.

    Args:
        message: Error message
        status_code: HTTP status code (default: 500)
        error_kind: Error kind name, e.g. "ValidationError"
        headers: Optional additional headers

    Returns:
        Lambda proxy response dictionary
    """
    body = {
        "errorKind": error_kind or "InternalError",
        "message": message
    }
    return _build_response(body, status_code, headers)


def exception_response(exc) -> Dict[str, Any]:
    """Render a ScanBookException as an error response."""
    return error_response(exc.message, status_code=exc.status_code, error_kind=exc.error_kind)


def validation_error_response(message: str) -> Dict[str, Any]:
    """Create a validation error response."""
    return error_response(message, status_code=400, error_kind="ValidationError")


def options_response() -> Dict[str, Any]:
    """Answer a CORS preflight request."""
    return _build_response({}, 200, None)
