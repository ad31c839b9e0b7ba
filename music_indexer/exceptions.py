"""
Custom exception hierarchy for the music indexer.

Per-file problems are raised as MetadataExtractionError and handled inside
the worker pool; store problems propagate up to the orchestrator and end
the run.
"""


class MusicIndexerError(Exception):
    """Base exception for all music indexer errors."""
    pass


class MetadataExtractionError(MusicIndexerError):
    """Raised when a file cannot be turned into a track record."""

    def __init__(self, path, kind, detail: str = ""):
        self.path = path
        self.kind = kind
        self.detail = detail
        message = f"{kind.value}: {path}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class DatabaseError(MusicIndexerError):
    """Raised when database operations fail."""
    pass


class ChangeDetectionError(DatabaseError):
    """Raised when a change-detection query keeps failing after retries."""
    pass


class StoreWriteError(DatabaseError):
    """Raised when a batch upsert fails. Carries the batch that was not written."""

    def __init__(self, message: str, batch=None):
        super().__init__(message)
        self.batch = list(batch or [])


class ChannelAbortedError(MusicIndexerError):
    """Raised to producers once the consumer side of a channel has given up."""
    pass


class SyncFailedError(MusicIndexerError):
    """Raised by a run that ended in the Failed state."""

    def __init__(self, message: str, progress=None, pending=None):
        super().__init__(message)
        self.progress = progress
        self.pending = list(pending or [])
