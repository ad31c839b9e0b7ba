import logging
import sqlite3
from typing import Dict, List, Optional, Sequence

from .. import config
from ..database.ops import TrackStore
from ..database.retry import call_with_retry
from ..exceptions import ChangeDetectionError
from ..models import FileCandidate


def is_changed(fs_modified: float, stored_modified: Optional[float]) -> bool:
    """
    A file needs reading iff it is unknown to the store or its mtime is
    strictly newer. Equal timestamps count as unchanged.
    """
    if stored_modified is None:
        return True
    return fs_modified > stored_modified


class ChangeDetector:
    """
    Filters a batch of candidates down to the new/changed ones with one
    store query per batch.
    """

    def __init__(self, store: TrackStore, retry_attempts: int = config.RETRY_ATTEMPTS):
        self.store = store
        self.retry_attempts = retry_attempts

    def filter_changed(self, batch: Sequence[FileCandidate]) -> List[FileCandidate]:
        known = self._known_for(batch)
        return [c for c in batch if is_changed(c.modified, known.get(str(c.path)))]

    def _known_for(self, batch: Sequence[FileCandidate]) -> Dict[str, float]:
        paths = [str(c.path) for c in batch]
        try:
            return call_with_retry(
                lambda: self.store.fetch_modified_by_paths(paths),
                f"Change detection for {len(paths)} paths",
                attempts=self.retry_attempts,
            )
        except sqlite3.Error as e:
            # Neither "all changed" nor "all unchanged" is safe to assume.
            raise ChangeDetectionError(f"Change detection failed for batch of {len(paths)} paths: {e}") from e


class PreloadChangeDetector(ChangeDetector):
    """
    Loads the whole path->modified map once, then filters in memory.
    Fine for small libraries; memory grows with the store.
    """

    def __init__(self, store: TrackStore, retry_attempts: int = config.RETRY_ATTEMPTS):
        super().__init__(store, retry_attempts)
        self._known: Optional[Dict[str, float]] = None

    def _known_for(self, batch: Sequence[FileCandidate]) -> Dict[str, float]:
        if self._known is None:
            try:
                self._known = call_with_retry(
                    self.store.fetch_all_modified,
                    "Preloading known paths",
                    attempts=self.retry_attempts,
                )
            except sqlite3.Error as e:
                raise ChangeDetectionError(f"Could not preload known paths: {e}") from e
            logging.info(f"Database has {len(self._known)} known files")
        return self._known
