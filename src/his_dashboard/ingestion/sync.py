"""
Sync orchestrator - remote HIS export -> local store, full replace.

State machine:

  IDLE -> CONNECTING -> CLEARING -> STREAMING -> FLUSHING -> COMPLETED
  (any error)  -> FAILED

  CONNECTING  open the remote resource (store untouched if this fails)
  CLEARING    open + clear the store
  STREAMING   chunk -> parser -> pending batch -> insert_batch at batch_size
  FLUSHING    parse trailing fragment, flush the last partial batch
  COMPLETED   re-read count from the store

Reads, parsing and writes interleave: the next chunk is only pulled after the
current chunk's rows are queued and any due batch is committed, so memory
stays around one batch plus one chunk whatever the export size.

Batches commit independently. A failure mid-stream leaves earlier batches in
the store. There is no cancellation and no lock; callers must not start a
second sync, or query, while one is streaming.
"""

import argparse
import logging
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from his_dashboard.config import SyncConfig
from his_dashboard.ingestion.parser import StreamParser
from his_dashboard.ingestion.sources import CsvSource, build_source
from his_dashboard.models import CanonicalVisitRecord
from his_dashboard.storage.base import VisitStore, build_store

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


class SyncState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CLEARING = "clearing"
    STREAMING = "streaming"
    FLUSHING = "flushing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SyncResult:
    success: bool
    message: str
    logs: List[str] = field(default_factory=list)
    rows: int = 0
    skipped: int = 0


class SyncOrchestrator:
    """Runs one full-replace sync. Instances are single-use."""

    def __init__(
        self,
        store: VisitStore,
        source: CsvSource,
        batch_size: int = 5000,
        progress_every: int = 50_000,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.store = store
        self.source = source
        self.batch_size = batch_size
        self.progress_every = progress_every
        self.on_progress = on_progress

        self.state = SyncState.IDLE
        self.transitions: List[SyncState] = [SyncState.IDLE]
        self.logs: List[str] = []
        self.processed = 0
        self.batches_flushed = 0
        self._batch: List[CanonicalVisitRecord] = []

    def _transition(self, state: SyncState) -> None:
        logger.debug("[sync] %s -> %s", self.state.value, state.value)
        self.state = state
        self.transitions.append(state)

    def _log(self, message: str) -> None:
        line = f"[{datetime.now():%H:%M:%S}] {message}"
        self.logs.append(line)
        logger.info("[sync] %s", message)
        if self.on_progress:
            self.on_progress(line)

    def run(self, resource_id: str) -> SyncResult:
        if self.state is not SyncState.IDLE:
            raise RuntimeError("SyncOrchestrator instances run only once")

        parser = StreamParser()
        self._log(f"Connecting to {self.source.describe(resource_id)} (stream mode)...")

        try:
            self._transition(SyncState.CONNECTING)
            with self.source.stream(resource_id) as chunks:
                self._transition(SyncState.CLEARING)
                self.store.open()
                self.store.clear()
                self._log("Cleared previous data from the local store.")

                self._transition(SyncState.STREAMING)
                for chunk in chunks:
                    self._consume(parser.feed(chunk))

                self._transition(SyncState.FLUSHING)
                self._consume(parser.finish())
                self._flush()

            final_count = self.store.count()
            self._transition(SyncState.COMPLETED)

        except Exception as exc:
            failed_in = self.state
            self._transition(SyncState.FAILED)
            logger.error(
                "[sync] Failed during %s after %d rows: %s",
                failed_in.value,
                self.processed,
                exc,
            )
            return SyncResult(
                success=False,
                message=str(exc),
                logs=[*self.logs, f"Error: {exc}"],
                rows=self.processed,
                skipped=parser.rows_skipped,
            )

        if parser.rows_skipped:
            self._log(f"Dropped {parser.rows_skipped:,} malformed rows.")
        self._log(f"Done! {final_count:,} rows in total.")
        return SyncResult(
            success=True,
            message=f"Synced {final_count} rows.",
            logs=list(self.logs),
            rows=final_count,
            skipped=parser.rows_skipped,
        )

    def _consume(self, records: List[CanonicalVisitRecord]) -> None:
        for record in records:
            self._batch.append(record)
            self.processed += 1
            if len(self._batch) >= self.batch_size:
                self._flush()
            if self.progress_every and self.processed % self.progress_every == 0:
                self._log(f"Processed {self.processed:,} rows...")
                # let a caller's UI thread breathe during very large imports
                time.sleep(0)

    def _flush(self) -> None:
        if not self._batch:
            return
        self.store.insert_batch(self._batch)
        self.batches_flushed += 1
        self._batch = []


def sync(
    resource_id: str,
    on_progress: Optional[ProgressCallback] = None,
    *,
    config: Optional[SyncConfig] = None,
    store: Optional[VisitStore] = None,
    source: Optional[CsvSource] = None,
) -> SyncResult:
    """
    Replace the local store with the export identified by resource_id.

    Args:
        resource_id: Opaque id of the remote export (sheet id / object key)
        on_progress: Receives every log line as it is produced
        config: Settings (default: from environment)
        store: Store to fill (default: built from config, closed afterwards)
        source: Remote source (default: built from config)

    Returns:
        SyncResult; failures are reported in it, never raised
    """
    config = config or SyncConfig.from_env()
    owns_store = store is None
    store = store or build_store(config)
    source = source or build_source(config)

    orchestrator = SyncOrchestrator(
        store,
        source,
        batch_size=config.batch_size,
        progress_every=config.progress_every,
        on_progress=on_progress,
    )
    try:
        return orchestrator.run(resource_id)
    finally:
        if owns_store:
            store.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line sync: his-sync <resource-id>."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    parser = argparse.ArgumentParser(
        description="Replace the local HIS store with a remote CSV export"
    )
    parser.add_argument("resource_id", help="Spreadsheet id, bronze object key or local path")
    parser.add_argument("--source", choices=["http", "minio", "file"], help="Override HIS_SOURCE")
    parser.add_argument("--batch-size", type=int, help="Override HIS_BATCH_SIZE")
    args = parser.parse_args(argv)

    config = SyncConfig.from_env()
    if args.source:
        config.source = args.source
    if args.batch_size:
        config.batch_size = args.batch_size

    result = sync(args.resource_id, config=config)

    logger.info("=" * 60)
    logger.info("HIS SYNC SUMMARY")
    logger.info("=" * 60)
    logger.info("%-10s: %s", "status", "ok" if result.success else "FAILED")
    logger.info("%-10s: %s", "message", result.message)
    logger.info("%-10s: %s", "rows", format(result.rows, ","))
    logger.info("%-10s: %s", "skipped", format(result.skipped, ","))
    logger.info("=" * 60)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
