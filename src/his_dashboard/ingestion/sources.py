"""
Remote CSV sources for the sync pipeline.

A source turns an opaque resource id into a stream of raw byte chunks:
  - HttpCsvSource:  spreadsheet / HIS export served over HTTP(S)
  - MinioCsvSource: export object previously landed in the bronze bucket
  - FileCsvSource:  export already on local disk

stream(resource_id) is a context manager. Entering it performs the request,
so connection problems surface before the caller touches the store.
"""

import logging
import os
from abc import ABC, abstractmethod
from contextlib import ExitStack, contextmanager
from typing import ContextManager, Iterator

import requests
from minio.error import S3Error

from his_dashboard.config import DEFAULT_SOURCE_URL, SyncConfig
from his_dashboard.errors import SourceConnectionError

logger = logging.getLogger(__name__)


class CsvSource(ABC):
    """Something that can stream a CSV export by id."""

    @abstractmethod
    def stream(self, resource_id: str) -> ContextManager[Iterator[bytes]]:
        """Open the resource; yield an iterator over its byte chunks."""

    def describe(self, resource_id: str) -> str:
        return resource_id


class HttpCsvSource(CsvSource):
    """Fetch an export over HTTP with a streamed response body."""

    def __init__(
        self,
        url_template: str = DEFAULT_SOURCE_URL,
        timeout: float = 30.0,
        chunk_size: int = 64 * 1024,
    ) -> None:
        self.url_template = url_template
        self.timeout = timeout
        self.chunk_size = chunk_size

    def describe(self, resource_id: str) -> str:
        return self.url_template.format(resource_id=resource_id)

    @contextmanager
    def stream(self, resource_id: str) -> Iterator[Iterator[bytes]]:
        url = self.describe(resource_id)
        try:
            response = requests.get(url, stream=True, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise SourceConnectionError(f"Cannot reach {url}: {e}") from e

        try:
            if not response.ok:
                raise SourceConnectionError(
                    f"HTTP Error {response.status_code} fetching {url}"
                )
            yield self._chunks(response)
        finally:
            response.close()

    def _chunks(self, response) -> Iterator[bytes]:
        try:
            for chunk in response.iter_content(chunk_size=self.chunk_size):
                if chunk:
                    yield chunk
        except requests.exceptions.RequestException as e:
            raise SourceConnectionError(f"Response body unreadable: {e}") from e


class MinioCsvSource(CsvSource):
    """Read an export object from the bronze bucket; resource id = object key."""

    def __init__(self, bucket: str = None, chunk_size: int = 64 * 1024, client=None):
        self.bucket = bucket or os.getenv("MINIO_BUCKET_BRONZE", "healthcare-bronze")
        self.chunk_size = chunk_size
        if client is None:
            from his_dashboard.utils.minio_client import MinIOClient

            client = MinIOClient()
        self.minio = client

    def describe(self, resource_id: str) -> str:
        return f"s3://{self.bucket}/{resource_id}"

    @contextmanager
    def stream(self, resource_id: str) -> Iterator[Iterator[bytes]]:
        with ExitStack() as stack:
            try:
                chunks = stack.enter_context(
                    self.minio.open_stream(self.bucket, resource_id, self.chunk_size)
                )
            except S3Error as e:
                raise SourceConnectionError(
                    f"Cannot read {self.describe(resource_id)}: {e.code}"
                ) from e
            yield self._guard(chunks, resource_id)

    def _guard(self, chunks: Iterator[bytes], resource_id: str) -> Iterator[bytes]:
        try:
            yield from chunks
        except S3Error as e:
            raise SourceConnectionError(
                f"Body of {self.describe(resource_id)} unreadable: {e.code}"
            ) from e


class FileCsvSource(CsvSource):
    """Read a local export, e.g. a data/raw/YYYY/MM/DD partition file."""

    def __init__(self, chunk_size: int = 64 * 1024) -> None:
        self.chunk_size = chunk_size

    @contextmanager
    def stream(self, resource_id: str) -> Iterator[Iterator[bytes]]:
        try:
            fh = open(resource_id, "rb")
        except OSError as e:
            raise SourceConnectionError(f"Cannot open {resource_id}: {e}") from e
        with fh:
            yield iter(lambda: fh.read(self.chunk_size), b"")


def build_source(config: SyncConfig) -> CsvSource:
    """Source selected by config.source ('http', 'minio' or 'file')."""
    kind = config.source.lower()
    if kind == "http":
        return HttpCsvSource(
            url_template=config.source_url,
            timeout=config.http_timeout,
            chunk_size=config.chunk_size,
        )
    if kind == "minio":
        return MinioCsvSource(chunk_size=config.chunk_size)
    if kind == "file":
        return FileCsvSource(chunk_size=config.chunk_size)
    raise ValueError(f"Unknown source: {config.source!r}")
