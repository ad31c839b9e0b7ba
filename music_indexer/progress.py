import threading
from dataclasses import dataclass
from typing import Optional

from tqdm import tqdm


@dataclass(frozen=True)
class ProgressSnapshot:
    total_files: int
    files_processed: int


class SyncProgress:
    """
    Counters for one run. `total_files` is set once while counting;
    `files_processed` only moves forward, and only the batch writer moves it.
    Readers on other threads use snapshot().
    """

    def __init__(self, show: bool = False):
        self._lock = threading.Lock()
        self._total_files = 0
        self._files_processed = 0
        self._show = show
        self._bar: Optional[tqdm] = None

    def start(self, total_files: int):
        with self._lock:
            self._total_files = total_files
        if self._show:
            self._bar = tqdm(total=total_files, desc="Indexing", unit="file")

    def advance(self, count: int):
        if count <= 0:
            return
        with self._lock:
            self._files_processed += count
        if self._bar is not None:
            self._bar.update(count)

    def finish(self):
        if self._bar is not None:
            self._bar.close()
            self._bar = None

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(self._total_files, self._files_processed)
