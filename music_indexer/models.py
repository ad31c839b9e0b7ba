from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional


@dataclass(frozen=True)
class FileCandidate:
    """
    A regular file found by the walker. Timestamps are captured once here
    and passed through to extraction.
    """
    path: Path
    size_bytes: int
    modified: float         # st_mtime, epoch seconds
    created: float          # st_birthtime where available, else st_ctime


@dataclass
class TrackRecord:
    """
    The persisted unit. Identity is `path`; the store's surrogate id is
    never carried here.
    """
    path: str
    extension: str          # suffix without the dot, case kept as on disk
    title: str = ""
    artist: str = ""
    album: str = ""
    album_artist: str = ""
    genre: str = ""
    publisher: str = ""
    catalog_number: str = ""

    # None means "no tag source had a value"; 0 is a real value.
    disc_number: Optional[int] = None
    track_number: Optional[int] = None
    year: Optional[int] = None

    # Technical properties (0 when unavailable)
    duration_seconds: int = 0
    audio_bitrate: int = 0      # kbps
    overall_bitrate: int = 0    # kbps
    sample_rate: int = 0
    bit_depth: int = 0
    channels: int = 0

    tags: Dict[str, str] = field(default_factory=dict)
    created: float = 0.0
    modified: float = 0.0


class FailureKind(Enum):
    UNSUPPORTED_CONTAINER = "unsupported-container"
    TAG_PROBE_FAILED = "tag-probe-failed"
    NO_TAGS_PRESENT = "no-tags-present"


@dataclass(frozen=True)
class ExtractionFailure:
    """Outcome of a file that produced no record. Only logged and counted."""
    path: Path
    kind: FailureKind


@dataclass
class ScanResult:
    files_scanned: int = 0
    records_processed: int = 0
    files_changed: int = 0
    files_failed: int = 0
    files_unsupported: int = 0
