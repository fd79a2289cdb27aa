"""Invoice upload entry points."""

import os
import logging
from typing import Any, Dict, Optional

from shared.s3 import S3Client
from shared.validators import (
    decode_base64_document,
    validate_content_type,
    validate_file_extension,
    validate_file_name
)
from shared.exceptions import StorageError
from invoices.lifecycle import InvoiceLifecycleManager
from invoices.models import UploadLinkRequest, UploadRequest

logger = logging.getLogger(__name__)


class InvoiceUploadService:
    """Creates invoice records and puts their documents in the bucket."""

    def __init__(
        self,
        lifecycle: Optional[InvoiceLifecycleManager] = None,
        s3_client: Optional[S3Client] = None
    ):
        """Initialize upload service."""
        self.lifecycle = lifecycle or InvoiceLifecycleManager()
        self.s3_client = s3_client or S3Client(os.environ.get('INVOICES_BUCKET'))
        self.upload_url_expiration = int(os.environ.get('UPLOAD_URL_EXPIRATION', '300'))

    def upload_invoice(self, request: UploadRequest) -> Dict[str, Any]:
        """
        Store an invoice document sent inline and create its record as UPLOADED.

        The record is written before the document so the bucket notification
        that starts extraction always finds it.

        Args:
            request: Upload request with base64 document content

        Returns:
            The created record

        Raises:
            ValidationError: If validation fails
            StorageError: If the upload fails
        """
        file_name = validate_file_extension(validate_file_name(request.file_name))
        content_type = validate_content_type(request.content_type)
        content = decode_base64_document(request.file_content)

        record = self.lifecycle.create_record(
            user_id=request.user_id,
            file_name=file_name,
            kind=request.kind,
            category=request.category
        )

        try:
            self.s3_client.upload_file(
                file_content=content,
                key=record.s3_key,
                content_type=content_type,
                metadata={
                    'user_id': record.user_id,
                    'invoice_id': record.invoice_id
                }
            )
        except StorageError as e:
            logger.error(f"Upload of invoice {record.invoice_id} failed: {e.message}")
            self.lifecycle.mark_failed(record.user_id, record.invoice_id, e.message)
            raise

        logger.info(f"Invoice uploaded: {record.s3_key}")
        return record.to_item()

    def generate_upload_link(self, request: UploadLinkRequest) -> Dict[str, Any]:
        """
        Create a PENDING_UPLOAD record and a presigned URL to PUT its document to.

        Args:
            request: Upload link request

        Returns:
            uploadUrl, invoiceId, s3Key and the expiry in seconds

        Raises:
            ValidationError: If validation fails
            StorageError: If URL generation fails
        """
        file_name = validate_file_extension(validate_file_name(request.file_name))
        content_type = validate_content_type(request.content_type)

        record = self.lifecycle.create_record(
            user_id=request.user_id,
            file_name=file_name,
            kind=request.kind,
            category=request.category,
            pending_upload=True
        )

        upload_url = self.s3_client.get_presigned_upload_url(
            key=record.s3_key,
            content_type=content_type,
            expiration=self.upload_url_expiration
        )

        logger.info(f"Generated upload URL for invoice {record.invoice_id}")

        return {
            'uploadUrl': upload_url,
            'invoiceId': record.invoice_id,
            's3Key': record.s3_key,
            'expiresIn': self.upload_url_expiration
        }
