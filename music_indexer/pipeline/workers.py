import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Iterator, List, Optional

from .. import config
from ..exceptions import ChannelAbortedError, MetadataExtractionError
from ..metadata.extract import MetadataExtractor
from ..models import ExtractionFailure, FailureKind, FileCandidate, TrackRecord

_CLOSED = object()


class ResultChannel:
    """
    Bounded hand-off from extraction workers to the batch writer.

    put() blocks while the channel is full, which is what throttles the
    workers when the writer falls behind. close() marks the end of input;
    abort() releases blocked producers when the consumer has failed.
    """

    def __init__(self, capacity: int = config.CHANNEL_CAPACITY,
                 poll_seconds: float = config.CHANNEL_POLL_SECONDS):
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=capacity)
        self._aborted = threading.Event()
        self._poll_seconds = poll_seconds

    def put(self, record: TrackRecord):
        self._put(record)

    def close(self):
        self._put(_CLOSED)

    def abort(self):
        self._aborted.set()

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def __iter__(self) -> Iterator[TrackRecord]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]

    def _put(self, item: object):
        while True:
            if self._aborted.is_set():
                raise ChannelAbortedError("Result channel aborted by consumer")
            try:
                self._queue.put(item, timeout=self._poll_seconds)
                return
            except queue.Full:
                continue


class WorkerPool:
    """
    Runs extractions on a thread pool with at most `max_in_flight` running
    or queued at once. submit() blocks until a permit frees; the permit is
    held until the result has been handed to the channel.
    """

    def __init__(self,
                 extractor: MetadataExtractor,
                 channel: ResultChannel,
                 max_in_flight: int = config.MAX_IN_FLIGHT):
        self.extractor = extractor
        self.channel = channel
        self.max_in_flight = max_in_flight

        self._permits = threading.BoundedSemaphore(max_in_flight)
        self._executor = ThreadPoolExecutor(max_workers=max_in_flight, thread_name_prefix="extract")
        self._lock = threading.Lock()
        self._failures: List[ExtractionFailure] = []
        self.submitted = 0

    def submit(self, candidate: FileCandidate):
        self._permits.acquire()
        if self.channel.aborted:
            self._permits.release()
            raise ChannelAbortedError("Result channel aborted by consumer")
        try:
            self._executor.submit(self._run, candidate)
        except BaseException:
            self._permits.release()
            raise
        self.submitted += 1

    def join(self):
        """Waits for every submitted extraction to finish."""
        self._executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.join()

    @property
    def failures(self) -> List[ExtractionFailure]:
        with self._lock:
            return list(self._failures)

    @property
    def failed_count(self) -> int:
        return sum(1 for f in self.failures if f.kind is not FailureKind.UNSUPPORTED_CONTAINER)

    @property
    def unsupported_count(self) -> int:
        return sum(1 for f in self.failures if f.kind is FailureKind.UNSUPPORTED_CONTAINER)

    def _run(self, candidate: FileCandidate):
        try:
            record = self._extract(candidate)
            if record is not None:
                self.channel.put(record)
        except ChannelAbortedError:
            logging.debug(f"Dropped result for {candidate.path}: run aborted")
        finally:
            self._permits.release()

    def _extract(self, candidate: FileCandidate) -> Optional[TrackRecord]:
        try:
            return self.extractor.extract(candidate)
        except MetadataExtractionError as e:
            self._add_failure(candidate, e.kind)
            if e.kind is FailureKind.UNSUPPORTED_CONTAINER:
                # The walker does not filter by extension; most of these are covers, cue sheets, etc.
                logging.debug(f"Not an audio file: {candidate.path}")
            else:
                logging.warning(f"Error reading tags: {e}")
        except Exception as e:
            self._add_failure(candidate, FailureKind.TAG_PROBE_FAILED)
            logging.error(f"Failed to read {candidate.path}: {e}")
        return None

    def _add_failure(self, candidate: FileCandidate, kind: FailureKind):
        with self._lock:
            self._failures.append(ExtractionFailure(candidate.path, kind))
