"""Invoice data models."""

from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple
from urllib.parse import unquote_plus

from pydantic import BaseModel, Field

from shared.normalization import NOT_FOUND, DEFAULT_CURRENCY

DEFAULT_CATEGORY = "General"

DOCUMENT_PREFIX = "invoices"


class InvoiceStatus(str, Enum):
    """Lifecycle states of an invoice record."""

    PENDING_UPLOAD = "PENDING_UPLOAD"
    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATUSES = (InvoiceStatus.COMPLETED, InvoiceStatus.FAILED)

# States from which extraction may finish, successfully or not
EXTRACTABLE_STATUSES = (InvoiceStatus.UPLOADED, InvoiceStatus.PROCESSING)


class InvoiceKind(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class InvoiceRecord(BaseModel):
    """Invoice record as stored in the invoices table."""

    user_id: str
    invoice_id: str
    status: InvoiceStatus
    kind: InvoiceKind = InvoiceKind.EXPENSE
    category: str = DEFAULT_CATEGORY
    amount: Decimal = Decimal('0')
    invoice_date: str = NOT_FOUND
    upload_timestamp: str
    vendor_name: str = NOT_FOUND
    currency: str = DEFAULT_CURRENCY
    error_detail: Optional[str] = None
    file_name: str
    s3_key: str
    processed_at: Optional[str] = None
    updated_at: Optional[str] = None

    class Config:
        """Pydantic config."""
        from_attributes = True
        use_enum_values = True

    def to_item(self) -> dict:
        """Table item for this record, without unset optional attributes."""
        return self.model_dump(exclude_none=True)


class ExtractedFields(BaseModel):
    """Normalized extraction output written onto a completed record."""

    amount: Decimal
    invoice_date: str = NOT_FOUND
    vendor_name: str = NOT_FOUND
    currency: str = DEFAULT_CURRENCY


class UploadRequest(BaseModel):
    """Direct upload request: document bytes sent base64-encoded."""

    user_id: str = Field(..., alias="userId")
    file_name: str = Field(..., alias="fileName")
    file_content: str = Field(..., alias="fileContent")
    content_type: str = Field(default="application/pdf", alias="contentType")
    kind: Optional[str] = Field(default=None, alias="type")
    category: Optional[str] = None

    class Config:
        """Pydantic config."""
        populate_by_name = True


class UploadLinkRequest(BaseModel):
    """Deferred upload request: the client PUTs the bytes to a presigned URL."""

    user_id: str = Field(..., alias="userId")
    file_name: str = Field(..., alias="fileName")
    content_type: str = Field(..., alias="contentType")
    kind: Optional[str] = Field(default=None, alias="type")
    category: Optional[str] = None

    class Config:
        """Pydantic config."""
        populate_by_name = True


def document_key(user_id: str, invoice_id: str, file_name: str) -> str:
    """S3 key of an invoice document: invoices/{user_id}/{invoice_id}_{file_name}."""
    return f"{DOCUMENT_PREFIX}/{user_id}/{invoice_id}_{file_name}"


def parse_document_key(key: str) -> Optional[Tuple[str, str]]:
    """
    Recover (user_id, invoice_id) from an S3 object key.

    Keys in S3 event notifications are URL-encoded, spaces as '+'.
    """
    key = unquote_plus(key)
    parts = key.split('/')
    if len(parts) != 3 or parts[0] != DOCUMENT_PREFIX:
        return None

    user_id, file_part = parts[1], parts[2]
    invoice_id, separator, _ = file_part.partition('_')
    if not user_id or not invoice_id or not separator:
        return None

    return user_id, invoice_id
