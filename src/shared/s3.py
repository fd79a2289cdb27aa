"""S3 utilities and helper functions."""

import os
import boto3
from typing import Optional, Dict, Any
from botocore.exceptions import ClientError
import logging

from .exceptions import StorageError

logger = logging.getLogger(__name__)


class S3Client:
    """S3 client wrapper for invoice documents."""

    def __init__(self, bucket_name: str, s3: Any = None):
        """
        Initialize S3 client.

        Args:
            bucket_name: Name of the S3 bucket
            s3: Optional boto3 S3 client to reuse
        """
        if not bucket_name:
            raise StorageError("S3 bucket name is not configured")

        self.bucket_name = bucket_name

        if s3 is None:
            # Support for LocalStack
            endpoint_url = os.environ.get('LOCALSTACK_ENDPOINT')
            if endpoint_url and os.environ.get('USE_LOCALSTACK', 'false').lower() == 'true':
                s3 = boto3.client('s3', endpoint_url=endpoint_url)
            else:
                s3 = boto3.client('s3')

        self.s3 = s3

    def upload_file(
        self,
        file_content: bytes,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> str:
        """
        Upload a file to S3.

        Args:
            file_content: File content as bytes
            key: S3 object key
            content_type: Optional content type
            metadata: Optional metadata

        Returns:
            S3 object key

        Raises:
            StorageError: If the upload fails
        """
        try:
            kwargs = {
                'Bucket': self.bucket_name,
                'Key': key,
                'Body': file_content,
                'ServerSideEncryption': 'AES256'
            }

            if content_type:
                kwargs['ContentType'] = content_type

            if metadata:
                kwargs['Metadata'] = metadata

            self.s3.put_object(**kwargs)
            logger.info(f"Successfully uploaded file to s3://{self.bucket_name}/{key}")
            return key
        except ClientError as e:
            logger.error(f"Error uploading file to S3: {e}")
            raise StorageError(f"Failed to upload file: {str(e)}")

    def get_presigned_upload_url(
        self,
        key: str,
        content_type: str,
        expiration: int = 300
    ) -> str:
        """
        Generate a presigned PUT URL the browser can upload a document to.

        Args:
            key: S3 object key
            content_type: Content type the uploader must send
            expiration: URL expiration time in seconds (default: 5 minutes)

        Returns:
            Presigned URL

        Raises:
            StorageError: If URL generation fails
        """
        try:
            return self.s3.generate_presigned_url(
                'put_object',
                Params={
                    'Bucket': self.bucket_name,
                    'Key': key,
                    'ContentType': content_type
                },
                ExpiresIn=expiration
            )
        except ClientError as e:
            logger.error(f"Error generating presigned upload URL: {e}")
            raise StorageError(f"Failed to generate upload URL: {str(e)}")
