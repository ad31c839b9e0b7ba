"""
Configuration constants and run options for the music indexer.
"""
import os
from dataclasses import dataclass

# --- Store Batching ---
BATCH_SIZE = 100           # records per upsert statement
PATH_BATCH_SIZE = 500      # paths per change-detection query (stays under SQLite's variable limit)

# --- Concurrency ---
# Ceiling on simultaneously open files / parsers, not on queued work.
MAX_IN_FLIGHT = min(8, os.cpu_count() or 1)
CHANNEL_CAPACITY = 100     # extracted records waiting for the writer
CHANNEL_POLL_SECONDS = 0.1

# --- Store Retries ---
RETRY_ATTEMPTS = 3
RETRY_BASE_SECONDS = 0.25
RETRY_MAX_SECONDS = 4.0

# --- Defaults ---
DEFAULT_MUSIC_PATH = os.path.expanduser("~/Music")
DEFAULT_DB_NAME = "music_catalog.db"

# --- Tag Parsing ---
# Wrapper prefixes the tag libraries put in front of user-defined keys.
FREEFORM_KEY_PREFIXES = (
    "TXXX:",
    "WXXX:",
    "----:com.apple.iTunes:",
)

# Free-form keys (case-insensitive) tried in order for the text fields.
# ID3 frame ids first, then MP4 atoms, then Vorbis/APE/ASF spellings.
TITLE_KEYS = ["TIT2", "\xa9nam", "TITLE", "WM/Title"]
ARTIST_KEYS = ["TPE1", "\xa9ART", "ARTIST", "Author"]
ALBUM_KEYS = ["TALB", "\xa9alb", "ALBUM", "WM/AlbumTitle"]
GENRE_KEYS = ["TCON", "\xa9gen", "GENRE", "WM/Genre"]
ALBUM_ARTIST_KEYS = ["TPE2", "aART", "ALBUMARTIST", "ALBUM ARTIST", "ALBUM_ARTIST", "WM/AlbumArtist"]
PUBLISHER_KEYS = ["TPUB", "PUBLISHER", "LABEL", "ORGANIZATION", "WM/Publisher"]
CATALOG_NUMBER_KEYS = ["CATALOGNUMBER", "CATALOG NUMBER", "CATALOG #", "CATALOG", "LABELNO"]

# "N/Total" string fields, one per number.
TRACK_STRING_KEYS = ["TRCK", "TRACKNUMBER", "TRACK"]
DISC_STRING_KEYS = ["TPOS", "DISCNUMBER", "DISC"]
YEAR_STRING_KEYS = ["TDRC", "TYER", "DATE", "YEAR", "\xa9day"]

# Vendor-specific aliases, looked up last.
TRACK_ALIAS_KEYS = ["WM/TrackNumber", "TRACKNUM", "TRACK_NUMBER", "trkn"]
DISC_ALIAS_KEYS = ["WM/PartOfSet", "DISCNUM", "DISC_NUMBER", "disk"]
YEAR_ALIAS_KEYS = ["WM/Year", "ORIGINALDATE", "ORIGINALYEAR", "TDOR", "TORY", "RELEASEDATE", "RELEASE_DATE"]


@dataclass
class ScanConfig:
    """Options for one library synchronization run."""

    music_path: str = DEFAULT_MUSIC_PATH
    show_progress: bool = True
    batch_size: int = BATCH_SIZE
    path_batch_size: int = PATH_BATCH_SIZE
    max_in_flight: int = MAX_IN_FLIGHT
    channel_capacity: int = CHANNEL_CAPACITY
    # True: query the store per batch of paths. False: preload every known path once.
    use_optimized_scanning: bool = True
    mediainfo_fallback: bool = True

    @classmethod
    def from_env(cls) -> "ScanConfig":
        """Builds a config from MUSIC_PATH / SCAN_BATCH_SIZE / SCAN_WORKERS."""
        return cls(
            music_path=os.environ.get("MUSIC_PATH", DEFAULT_MUSIC_PATH),
            batch_size=int(os.environ.get("SCAN_BATCH_SIZE", BATCH_SIZE)),
            max_in_flight=int(os.environ.get("SCAN_WORKERS", MAX_IN_FLIGHT)),
        )

    def validate(self) -> None:
        """
        Raises:
            ValueError: If a size or ceiling is not positive
        """
        for name in ("batch_size", "path_batch_size", "max_in_flight", "channel_capacity"):
            value = getattr(self, name)
            if value < 1:
                raise ValueError(f"{name} must be at least 1 (got {value})")
