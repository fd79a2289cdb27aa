"""Invoice lifecycle: creation, extraction and terminal transitions.

States move one way only::

    PENDING_UPLOAD -> UPLOADED -> PROCESSING -> COMPLETED | FAILED
                      UPLOADED ---------------> COMPLETED | FAILED

Every transition is a conditional update evaluated by the store, so two
concurrent callers can never both move a record out of the same state.
A caller that loses the race re-reads the record and, where the stored result
is the one it was trying to write, treats the call as already done.
"""

import uuid
import logging
from typing import Any, Callable, Dict, Mapping, Optional
from datetime import datetime

from shared.exceptions import ConflictError, ExternalServiceError, NotFoundError
from shared.normalization import (
    NOT_FOUND,
    normalize_currency,
    normalize_invoice_date,
    parse_amount,
    utc_now
)
from shared.validators import (
    sanitize_string,
    validate_file_name,
    validate_invoice_kind,
    validate_user_id
)
from invoices.models import (
    DEFAULT_CATEGORY,
    EXTRACTABLE_STATUSES,
    TERMINAL_STATUSES,
    ExtractedFields,
    InvoiceRecord,
    InvoiceStatus,
    document_key
)
from invoices.store import DynamoInvoiceStore, InvoiceStore

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_REASON = "Extraction failed"


def normalize_extraction(extracted: Any) -> ExtractedFields:
    """
    Turn raw extraction output into the fields stored on a completed invoice.

    Args:
        extracted: Mapping with amount, date, vendor_name and currency

    Returns:
        Normalized fields

    Raises:
        ExternalServiceError: If the payload has no usable amount
    """
    if not isinstance(extracted, Mapping):
        raise ExternalServiceError("Extraction returned no usable data")

    raw_amount = extracted.get('amount')
    amount = parse_amount(raw_amount)
    if amount is None:
        raise ExternalServiceError(f"Extraction returned no usable amount: {raw_amount!r}")

    vendor = extracted.get('vendor_name', extracted.get('vendorName'))
    if isinstance(vendor, str) and vendor.strip():
        vendor = ' '.join(vendor.split())
    else:
        vendor = NOT_FOUND

    return ExtractedFields(
        amount=amount,
        invoice_date=normalize_invoice_date(extracted.get('date')),
        vendor_name=vendor,
        currency=normalize_currency(extracted.get('currency'), raw_amount)
    )


class InvoiceLifecycleManager:
    """Owns every status change of an invoice record."""

    def __init__(
        self,
        store: Optional[InvoiceStore] = None,
        extraction_service: Any = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the lifecycle manager.

        Args:
            store: Invoice record store (DynamoDB table from the environment by default)
            extraction_service: ExtractionService used by process_document
            clock: Returns the current UTC time
        """
        self.store = store or DynamoInvoiceStore()
        self.extraction_service = extraction_service
        self.clock = clock or utc_now

    def get_record(self, user_id: str, invoice_id: str) -> InvoiceRecord:
        """
        Get an invoice record.

        Raises:
            NotFoundError: If the record does not exist
        """
        item = self.store.get(user_id, invoice_id)
        if not item:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return InvoiceRecord(**item)

    def create_record(
        self,
        user_id: str,
        file_name: str,
        kind: Optional[str] = None,
        category: Optional[str] = None,
        pending_upload: bool = False
    ) -> InvoiceRecord:
        """
        Create a new invoice record.

        Args:
            user_id: Owner of the invoice
            file_name: Original document file name
            kind: INCOME or EXPENSE (default EXPENSE)
            category: Free-form category (default "General")
            pending_upload: True when the bytes will arrive later through an upload link

        Returns:
            The stored record, UPLOADED or PENDING_UPLOAD

        Raises:
            ValidationError: If user_id or file_name is empty, or kind is unknown
        """
        user_id = validate_user_id(user_id)
        file_name = validate_file_name(file_name)
        kind = validate_invoice_kind(kind)
        category = sanitize_string(category, max_length=100) if category else ''

        invoice_id = str(uuid.uuid4())
        now = self._timestamp()
        status = InvoiceStatus.PENDING_UPLOAD if pending_upload else InvoiceStatus.UPLOADED

        record = InvoiceRecord(
            user_id=user_id,
            invoice_id=invoice_id,
            status=status.value,
            kind=kind,
            category=category or DEFAULT_CATEGORY,
            upload_timestamp=now,
            file_name=file_name,
            s3_key=document_key(user_id, invoice_id, file_name),
            updated_at=now
        )

        self.store.put(record.to_item())

        logger.info(f"Created invoice {invoice_id} for user {user_id} in {status.value}")
        return record

    def mark_uploaded(self, user_id: str, invoice_id: str) -> InvoiceRecord:
        """
        Record that the document bytes arrived for a PENDING_UPLOAD invoice.

        Records already past PENDING_UPLOAD are returned unchanged.
        """
        record = self.get_record(user_id, invoice_id)
        if record.status != InvoiceStatus.PENDING_UPLOAD:
            return record

        try:
            item = self.store.conditional_update(
                user_id,
                invoice_id,
                {'status': InvoiceStatus.UPLOADED.value, 'updated_at': self._timestamp()},
                [InvoiceStatus.PENDING_UPLOAD.value]
            )
        except ConflictError:
            # Another delivery moved it on already
            return self.get_record(user_id, invoice_id)

        logger.info(f"Invoice {invoice_id} uploaded")
        return InvoiceRecord(**item)

    def mark_processing(self, user_id: str, invoice_id: str) -> InvoiceRecord:
        """
        Move an UPLOADED invoice to PROCESSING.

        Raises:
            NotFoundError: If the record does not exist
            ConflictError: If the record is terminal or still waiting for its upload
        """
        record = self.get_record(user_id, invoice_id)
        if record.status == InvoiceStatus.PROCESSING:
            return record
        if record.status != InvoiceStatus.UPLOADED:
            raise ConflictError(f"Invoice {invoice_id} is {record.status}; cannot start processing")

        try:
            item = self.store.conditional_update(
                user_id,
                invoice_id,
                {'status': InvoiceStatus.PROCESSING.value, 'updated_at': self._timestamp()},
                [InvoiceStatus.UPLOADED.value]
            )
        except ConflictError:
            current = self.get_record(user_id, invoice_id)
            if current.status == InvoiceStatus.PROCESSING:
                return current
            raise

        logger.info(f"Invoice {invoice_id} processing")
        return InvoiceRecord(**item)

    def apply_extraction_result(
        self,
        user_id: str,
        invoice_id: str,
        extracted: Dict[str, Any]
    ) -> InvoiceRecord:
        """
        Write extracted fields and complete the invoice.

        Unusable extraction output fails the invoice instead; the FAILED record
        is returned. Delivering the same extraction twice returns the stored
        record without writing.

        Args:
            user_id: Owner of the invoice
            invoice_id: Invoice ID
            extracted: Raw extraction output

        Returns:
            The COMPLETED (or FAILED) record

        Raises:
            NotFoundError: If the record does not exist
            ConflictError: If the record is FAILED, not yet uploaded, or
                completed with different fields
        """
        record = self.get_record(user_id, invoice_id)

        try:
            fields = normalize_extraction(extracted)
        except ExternalServiceError as e:
            logger.warning(f"Unusable extraction for invoice {invoice_id}: {e.message}")
            return self.mark_failed(user_id, invoice_id, e.message)

        if record.status == InvoiceStatus.COMPLETED:
            return self._already_completed(record, fields)
        if record.status not in EXTRACTABLE_STATUSES:
            raise ConflictError(f"Invoice {invoice_id} is {record.status}; cannot complete")

        now = self._timestamp()
        updates = {
            'status': InvoiceStatus.COMPLETED.value,
            'amount': fields.amount,
            'invoice_date': fields.invoice_date,
            'vendor_name': fields.vendor_name,
            'currency': fields.currency,
            'processed_at': now,
            'updated_at': now
        }

        try:
            item = self.store.conditional_update(
                user_id,
                invoice_id,
                updates,
                [status.value for status in EXTRACTABLE_STATUSES]
            )
        except ConflictError:
            current = self.get_record(user_id, invoice_id)
            if current.status == InvoiceStatus.COMPLETED:
                return self._already_completed(current, fields)
            raise

        logger.info(
            f"Invoice {invoice_id} completed: amount={fields.amount} {fields.currency}, "
            f"date={fields.invoice_date}"
        )
        return InvoiceRecord(**item)

    def mark_failed(self, user_id: str, invoice_id: str, reason: Optional[str]) -> InvoiceRecord:
        """
        Fail an invoice.

        A record that is already FAILED is returned unchanged and keeps its
        first error_detail.

        Raises:
            NotFoundError: If the record does not exist
            ConflictError: If the record is COMPLETED or not yet uploaded
        """
        reason = reason.strip() if isinstance(reason, str) and reason.strip() else DEFAULT_FAILURE_REASON

        record = self.get_record(user_id, invoice_id)
        if record.status == InvoiceStatus.FAILED:
            return record
        if record.status not in EXTRACTABLE_STATUSES:
            raise ConflictError(f"Invoice {invoice_id} is {record.status}; cannot mark failed")

        now = self._timestamp()
        try:
            item = self.store.conditional_update(
                user_id,
                invoice_id,
                {
                    'status': InvoiceStatus.FAILED.value,
                    'error_detail': reason,
                    'processed_at': now,
                    'updated_at': now
                },
                [status.value for status in EXTRACTABLE_STATUSES]
            )
        except ConflictError:
            current = self.get_record(user_id, invoice_id)
            if current.status == InvoiceStatus.FAILED:
                return current
            raise

        logger.info(f"Invoice {invoice_id} failed: {reason}")
        return InvoiceRecord(**item)

    def process_document(self, user_id: str, invoice_id: str) -> InvoiceRecord:
        """
        Run extraction for an uploaded document and settle the invoice.

        Terminal records are returned as they are, so a redelivered trigger
        does nothing.

        Returns:
            The COMPLETED or FAILED record
        """
        record = self.get_record(user_id, invoice_id)
        if record.status in TERMINAL_STATUSES:
            logger.info(f"Invoice {invoice_id} already {record.status}, skipping")
            return record

        if record.status == InvoiceStatus.PENDING_UPLOAD:
            self.mark_uploaded(user_id, invoice_id)

        try:
            self.mark_processing(user_id, invoice_id)
        except ConflictError:
            current = self.get_record(user_id, invoice_id)
            if current.status in TERMINAL_STATUSES:
                return current
            raise

        try:
            extracted = self._extraction().extract(record.s3_key)
        except ExternalServiceError as e:
            logger.error(f"Extraction failed for invoice {invoice_id}: {e.message}")
            return self.mark_failed(user_id, invoice_id, e.message)

        return self.apply_extraction_result(user_id, invoice_id, extracted)

    def _already_completed(self, record: InvoiceRecord, fields: ExtractedFields) -> InvoiceRecord:
        stored_amount = parse_amount(record.amount)
        same = (
            stored_amount == fields.amount
            and record.invoice_date == fields.invoice_date
            and record.vendor_name == fields.vendor_name
            and record.currency == fields.currency
        )
        if not same:
            raise ConflictError(
                f"Invoice {record.invoice_id} already completed with different data"
            )

        logger.info(f"Invoice {record.invoice_id} already completed with this extraction")
        return record

    def _extraction(self):
        if self.extraction_service is None:
            from extraction.textract_service import TextractService
            self.extraction_service = TextractService()
        return self.extraction_service

    def _timestamp(self) -> str:
        return self.clock().isoformat()
