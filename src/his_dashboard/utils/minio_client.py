"""MinIO client wrapper for object storage operations."""

import logging
import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from minio import Minio
from minio.error import S3Error

logger = logging.getLogger(__name__)


class MinIOClient:
    """Wrapper for MinIO operations with HIS export conventions."""

    def __init__(
        self,
        endpoint: str = None,
        access_key: str = None,
        secret_key: str = None,
        secure: bool = False,
    ):
        """
        Initialize MinIO client.

        Args:
            endpoint: MinIO server endpoint (default from env)
            access_key: Access key (default from env)
            secret_key: Secret key (default from env)
            secure: Use HTTPS (default False for local dev)
        """
        self.endpoint = endpoint or os.getenv("MINIO_ENDPOINT", "minio:9000")
        self.access_key = access_key or os.getenv("MINIO_ACCESS_KEY", "minioadmin")
        self.secret_key = secret_key or os.getenv("MINIO_SECRET_KEY", "minioadmin123")

        self.client = Minio(
            self.endpoint,
            access_key=self.access_key,
            secret_key=self.secret_key,
            secure=secure,
        )

        logger.info(f"MinIO client initialized for endpoint: {self.endpoint}")

    def ensure_bucket_exists(self, bucket_name: str) -> None:
        """Create bucket if it doesn't exist."""
        try:
            if not self.client.bucket_exists(bucket_name):
                self.client.make_bucket(bucket_name)
                logger.info(f"Created bucket: {bucket_name}")
        except S3Error as e:
            logger.error(f"Error ensuring bucket exists: {e}")
            raise

    def upload_export_to_bronze(
        self,
        file_path: str,
        partition_date: Optional[datetime] = None,
    ) -> str:
        """
        Upload a HIS export CSV to the bronze bucket with date partitioning.

        Args:
            file_path: Local CSV file path
            partition_date: Date for partitioning (default: today)

        Returns:
            Object key inside the bronze bucket (usable as a sync resource id)
        """
        if partition_date is None:
            partition_date = datetime.now()

        bucket_name = os.getenv("MINIO_BUCKET_BRONZE", "healthcare-bronze")

        # his_export/YYYY/MM/DD/filename.csv
        object_key = (
            f"his_export/"
            f"{partition_date.year:04d}/"
            f"{partition_date.month:02d}/"
            f"{partition_date.day:02d}/"
            f"{Path(file_path).name}"
        )

        try:
            self.ensure_bucket_exists(bucket_name)
            self.client.fput_object(
                bucket_name, object_key, file_path, content_type="text/csv"
            )
        except S3Error as e:
            logger.error(f"Error uploading file: {e}")
            raise

        logger.info(f"Uploaded {file_path} to {bucket_name}/{object_key}")
        return object_key

    @contextmanager
    def open_stream(
        self, bucket_name: str, object_name: str, chunk_size: int = 64 * 1024
    ) -> Iterator[Iterator[bytes]]:
        """
        Fetch an object and expose its body as an iterator of byte chunks.

        The response is closed and its connection released on exit,
        also when the consumer stops reading early.
        """
        response = self.client.get_object(bucket_name, object_name)
        try:
            yield response.stream(chunk_size)
        finally:
            response.close()
            response.release_conn()
