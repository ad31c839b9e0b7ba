import logging
import sqlite3
from typing import Iterable, List

from .. import config
from ..database.ops import TrackStore
from ..database.retry import call_with_retry
from ..exceptions import StoreWriteError
from ..models import TrackRecord
from ..progress import SyncProgress


class BatchWriter:
    """
    Drains extracted records and writes them in batches, one upsert per
    batch. Sole writer of the store and of the progress counter.
    """

    def __init__(self,
                 store: TrackStore,
                 progress: SyncProgress,
                 batch_size: int = config.BATCH_SIZE,
                 retry_attempts: int = config.RETRY_ATTEMPTS):
        self.store = store
        self.progress = progress
        self.batch_size = batch_size
        self.retry_attempts = retry_attempts
        self.records_written = 0
        self.batches_written = 0

    def drain(self, records: Iterable[TrackRecord]) -> int:
        """Consumes `records` until exhausted, flushing full batches and the final partial one."""
        batch: List[TrackRecord] = []
        for record in records:
            batch.append(record)
            if len(batch) >= self.batch_size:
                self.flush(batch)
                batch = []

        if batch:
            self.flush(batch)
        return self.records_written

    def flush(self, batch: List[TrackRecord]):
        """
        Raises:
            StoreWriteError: after retries; the unwritten batch is attached
        """
        try:
            call_with_retry(
                lambda: self.store.upsert_tracks(batch),
                f"Upsert of {len(batch)} tracks",
                attempts=self.retry_attempts,
            )
        except sqlite3.Error as e:
            raise StoreWriteError(f"Upsert of {len(batch)} tracks failed: {e}", batch) from e

        self.records_written += len(batch)
        self.batches_written += 1
        self.progress.advance(len(batch))
        logging.debug(f"Flushed batch of {len(batch)} tracks ({self.records_written} total)")
