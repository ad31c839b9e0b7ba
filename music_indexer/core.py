import logging
import sqlite3
import threading
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .config import ScanConfig
from .database.db import DBManager
from .database.ops import TrackStore
from .exceptions import ChannelAbortedError, StoreWriteError, SyncFailedError
from .metadata.extract import MetadataExtractor
from .models import ScanResult
from .pipeline.workers import ResultChannel, WorkerPool
from .pipeline.writer import BatchWriter
from .progress import SyncProgress
from .scanning.detector import ChangeDetector, PreloadChangeDetector
from .scanning.filesystem import DirectoryWalker


class SyncState(Enum):
    IDLE = "idle"
    COUNTING = "counting"
    RUNNING = "running"        # walk, change detection and extraction, concurrently
    DRAINING = "draining"      # walk done, flushing what is left
    COMPLETED = "completed"
    FAILED = "failed"


class _WalkStats:
    """Written by the walker thread only; read after it has been joined."""

    def __init__(self):
        self.files_scanned = 0
        self.files_changed = 0
        self.error: Optional[BaseException] = None


class SyncOrchestrator:
    """
    One synchronization run of a directory tree into the store.

    The walker thread walks, detects changes per batch and feeds the worker
    pool; the calling thread runs the batch writer until the walker closes
    the channel. Per-file problems are counted; store problems fail the run.
    """

    def __init__(self,
                 store: TrackStore,
                 config: ScanConfig,
                 extractor: Optional[MetadataExtractor] = None,
                 walker: Optional[DirectoryWalker] = None):
        self.store = store
        self.config = config
        self.extractor = extractor or MetadataExtractor(mediainfo_fallback=config.mediainfo_fallback)
        self.walker = walker or DirectoryWalker()
        self.progress = SyncProgress(show=config.show_progress)
        self._state = SyncState.IDLE
        self._state_lock = threading.Lock()

    @property
    def state(self) -> SyncState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: SyncState):
        with self._state_lock:
            self._state = state
        logging.debug(f"Sync state -> {state.value}")

    def run(self) -> ScanResult:
        """
        Raises:
            FileNotFoundError: music_path is not a directory
            SyncFailedError: the store failed during detection or writing
        """
        self.config.validate()
        root = Path(self.config.music_path)
        if not root.is_dir():
            raise FileNotFoundError(f"Music path {root} does not exist.")

        logging.info(f"Starting music library scan at: {root}")

        # --- Counting (best effort, may be stale by the time we walk) ---
        self._set_state(SyncState.COUNTING)
        total_files = self.walker.count_files(root)
        self.progress.start(total_files)

        if self.config.use_optimized_scanning:
            detector = ChangeDetector(self.store)
        else:
            detector = PreloadChangeDetector(self.store)

        channel = ResultChannel(capacity=self.config.channel_capacity)
        pool = WorkerPool(self.extractor, channel, max_in_flight=self.config.max_in_flight)
        writer = BatchWriter(self.store, self.progress, batch_size=self.config.batch_size)
        walk = _WalkStats()

        # --- Walk + detect + extract on one side, write on the other ---
        self._set_state(SyncState.RUNNING)
        producer = threading.Thread(
            target=self._produce,
            args=(root, detector, pool, channel, walk),
            name="sync-walker",
            daemon=True,
        )
        producer.start()

        try:
            writer.drain(channel)
        except StoreWriteError as e:
            channel.abort()
            producer.join()
            self.progress.finish()
            self._set_state(SyncState.FAILED)
            logging.error(f"Scan failed after {writer.records_written} tracks: {e}")
            raise SyncFailedError(str(e), progress=self.progress.snapshot(), pending=e.batch) from e
        except BaseException:
            # Interrupted or unexpected: release blocked workers before propagating.
            channel.abort()
            producer.join()
            self.progress.finish()
            self._set_state(SyncState.FAILED)
            raise

        producer.join()
        self.progress.finish()

        if walk.error is not None:
            self._set_state(SyncState.FAILED)
            raise SyncFailedError(
                f"Scan aborted: {walk.error}", progress=self.progress.snapshot()
            ) from walk.error

        self._set_state(SyncState.COMPLETED)
        result = ScanResult(
            files_scanned=walk.files_scanned,
            records_processed=writer.records_written,
            files_changed=walk.files_changed,
            files_failed=pool.failed_count,
            files_unsupported=pool.unsupported_count,
        )
        self._log_completion(result)
        return result

    def _produce(self, root: Path, detector: ChangeDetector, pool: WorkerPool,
                 channel: ResultChannel, walk: _WalkStats):
        try:
            for batch in self.walker.iter_batches(root, self.config.path_batch_size):
                if channel.aborted:
                    logging.debug("Walk stopped: writer aborted the run")
                    break
                walk.files_scanned += len(batch)
                changed = detector.filter_changed(batch)
                walk.files_changed += len(changed)
                for candidate in changed:
                    pool.submit(candidate)
        except ChannelAbortedError:
            # The writer failed; run() reports its error.
            logging.debug("Walk stopped: writer aborted the run")
        except Exception as e:
            logging.error(f"Walk aborted: {e}")
            walk.error = e
        finally:
            pool.join()
            if not channel.aborted:
                self._set_state(SyncState.DRAINING)
            try:
                channel.close()
            except ChannelAbortedError:
                pass

    def _log_completion(self, result: ScanResult):
        try:
            total_tracks = self.store.count_tracks()
        except sqlite3.Error as e:
            logging.warning(f"Could not count tracks after scan: {e}")
            total_tracks = 0

        logging.info(
            f"Scan completed: {result.files_scanned} files scanned, "
            f"{result.records_processed} tracks processed, {total_tracks} tracks in database"
        )
        if result.files_failed:
            logging.warning(f"{result.files_failed} files could not be read")


class MusicIndexerApp:
    """
    Long-lived handle on one catalog. Each sync() opens its own store
    connection, so calls from several threads run side by side.
    """

    def __init__(self, db_path: Path):
        self.db_manager = DBManager(db_path)
        self._runs_lock = threading.Lock()
        self._runs: List[SyncOrchestrator] = []

    @property
    def runs(self) -> List[SyncOrchestrator]:
        """Runs currently in progress, oldest first, for progress polling."""
        with self._runs_lock:
            return list(self._runs)

    @property
    def current(self) -> Optional[SyncOrchestrator]:
        """Most recently started run still in progress."""
        runs = self.runs
        return runs[-1] if runs else None

    def sync(self, config: ScanConfig) -> ScanResult:
        """
        Runs one synchronization of config.music_path into the catalog.
        Concurrent calls against the same root are not serialized here.
        """
        with self.db_manager.open_store() as store:
            orchestrator = SyncOrchestrator(store, config)
            with self._runs_lock:
                self._runs.append(orchestrator)
            try:
                return orchestrator.run()
            finally:
                with self._runs_lock:
                    self._runs.remove(orchestrator)

    def stats(self) -> dict:
        with self.db_manager.open_store() as store:
            return store.library_stats()



def start_sync(db_path: Path, config: ScanConfig) -> ScanResult:
    """Entry point for callers that just want one run and its counts."""
    return MusicIndexerApp(Path(db_path)).sync(config)
