"""Validation utilities for the invoice management application."""

import base64
import binascii
import re
from typing import Any, List, Optional

from .exceptions import ValidationError


# Invoice kinds
VALID_INVOICE_KINDS = ["INCOME", "EXPENSE"]

# Report period selectors besides an explicit YYYY-MM
PERIOD_ALL = "all"
PERIOD_CURRENT = "current"

_MONTH_PERIOD = re.compile(r'^(\d{4})-(0[1-9]|1[0-2])$')

# Document uploads
ALLOWED_EXTENSIONS = ['.pdf', '.jpg', '.jpeg', '.png']
ALLOWED_CONTENT_TYPES = ['application/pdf', 'image/jpeg', 'image/png']
MAX_FILE_SIZE_MB = 5


def validate_user_id(user_id: Any) -> str:
    """
    Validate an owner id.

    The id becomes one segment of the document key, so it may not contain '/'.

    Raises:
        ValidationError: If the id is missing, blank or contains '/'
    """
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("userId is required")
    if '/' in user_id:
        raise ValidationError("userId must not contain '/'")
    return user_id.strip()


def validate_invoice_kind(kind: Optional[str]) -> str:
    """
    Validate invoice kind, defaulting to EXPENSE when not given.

    Args:
        kind: INCOME or EXPENSE, any case

    Returns:
        Upper-case kind

    Raises:
        ValidationError: If kind is not a known value
    """
    if kind is None or kind == '':
        return "EXPENSE"

    if not isinstance(kind, str) or kind.upper() not in VALID_INVOICE_KINDS:
        raise ValidationError(
            f"Invalid invoice type. Must be one of: {', '.join(VALID_INVOICE_KINDS)}"
        )

    return kind.upper()


def validate_period(period: Optional[str]) -> str:
    """
    Validate a report period selector.

    Args:
        period: "all", "current" or "YYYY-MM"; empty means "all"

    Returns:
        Normalized period selector

    Raises:
        ValidationError: If the selector is malformed
    """
    if period is None or (isinstance(period, str) and not period.strip()):
        return PERIOD_ALL

    if not isinstance(period, str):
        raise ValidationError("Period must be a string")

    period = period.strip().lower()

    if period in (PERIOD_ALL, PERIOD_CURRENT) or _MONTH_PERIOD.match(period):
        return period

    raise ValidationError("Invalid period. Use 'all', 'current' or 'YYYY-MM'")


def split_month_period(period: str) -> Optional[tuple]:
    """Return (year, month) for a YYYY-MM selector, None otherwise."""
    match = _MONTH_PERIOD.match(period)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def validate_file_name(filename: Any) -> str:
    """
    Validate a document file name and strip any path components.

    Raises:
        ValidationError: If the name is missing
    """
    if not isinstance(filename, str) or not filename.strip():
        raise ValidationError("fileName is required")

    cleaned = filename.strip().replace('\\', '/').rsplit('/', 1)[-1]
    cleaned = re.sub(r'\s+', '_', cleaned)

    if not cleaned:
        raise ValidationError("fileName is required")

    return cleaned


def validate_file_extension(filename: str, allowed_extensions: List[str] = ALLOWED_EXTENSIONS) -> str:
    """
    Validate file extension.

    Args:
        filename: Filename to validate
        allowed_extensions: List of allowed extensions (e.g., ['.pdf', '.png'])

    Returns:
        Validated filename

    Raises:
        ValidationError: If file extension is not allowed
    """
    extension = filename.lower().rsplit('.', 1)[-1] if '.' in filename else ''

    if not extension or f'.{extension}' not in [ext.lower() for ext in allowed_extensions]:
        raise ValidationError(
            f"Invalid file type. Allowed types: {', '.join(allowed_extensions)}"
        )

    return filename


def validate_content_type(content_type: Any) -> str:
    """Validate the MIME type announced for an upload."""
    if not isinstance(content_type, str) or content_type.lower() not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            f"Invalid content type. Allowed types: {', '.join(ALLOWED_CONTENT_TYPES)}"
        )
    return content_type.lower()


def decode_base64_document(base64_string: Any, max_size_mb: int = MAX_FILE_SIZE_MB) -> bytes:
    """
    Decode a base64-encoded document, accepting an optional data URI prefix.

    Args:
        base64_string: Base64-encoded document
        max_size_mb: Maximum allowed decoded size in MB

    Returns:
        Decoded bytes

    Raises:
        ValidationError: If the payload is missing, malformed or too large
    """
    if not isinstance(base64_string, str) or not base64_string:
        raise ValidationError("fileContent is required")

    # Remove data URI prefix if present
    if base64_string.startswith('data:') and ',' in base64_string:
        base64_string = base64_string.split(',', 1)[1]

    try:
        content = base64.b64decode(base64_string, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid base64 encoding")

    if not content:
        raise ValidationError("fileContent is empty")

    if len(content) > max_size_mb * 1024 * 1024:
        raise ValidationError(f"File size exceeds {max_size_mb}MB limit")

    return content


def sanitize_string(value: Any, max_length: Optional[int] = None) -> str:
    """
    Sanitize string input by trimming whitespace.

    Args:
        value: String to sanitize
        max_length: Optional maximum length

    Returns:
        Sanitized string

    Raises:
        ValidationError: If string is invalid
    """
    if not isinstance(value, str):
        raise ValidationError("Value must be a string")

    value = value.strip()

    if max_length and len(value) > max_length:
        raise ValidationError(f"Value exceeds maximum length of {max_length}")

    return value
