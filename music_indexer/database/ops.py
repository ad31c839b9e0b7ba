import json
import sqlite3
import threading
from typing import Dict, Iterable, List, Optional, Sequence

from ..models import TrackRecord

# Every column written on insert, in statement order.
INSERT_COLUMNS = [
    "path", "extension", "title", "artist", "album",
    "disc_number", "track_number", "year",
    "genre", "album_artist", "publisher", "catalog_number",
    "duration_seconds", "audio_bitrate", "overall_bitrate",
    "sample_rate", "bit_depth", "channels",
    "tags", "created", "modified",
]

# Columns overwritten when the path already exists. path and created are kept.
UPDATE_COLUMNS = [c for c in INSERT_COLUMNS if c not in ("path", "created")]

# Columns the query helpers may list distinct values for.
DISTINCT_COLUMNS = {"artist", "album", "album_artist", "genre", "publisher", "extension"}

UPSERT_SQL = (
    f"INSERT INTO tracks ({', '.join(INSERT_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in INSERT_COLUMNS)}) "
    f"ON CONFLICT(path) DO UPDATE SET "
    + ", ".join(f"{c} = excluded.{c}" for c in UPDATE_COLUMNS)
)


class TrackStore:
    """
    Store operations used by the sync pipeline and the query tools.
    All access to the shared connection is serialized through `lock`.
    """

    def __init__(self, conn: sqlite3.Connection, lock: Optional[threading.Lock] = None):
        self.conn = conn
        self.lock = lock or threading.Lock()

    def fetch_modified_by_paths(self, paths: Sequence[str]) -> Dict[str, float]:
        """
        Returns {path: modified} for the given paths that exist in the store.
        Absent paths simply have no entry.
        """
        if not paths:
            return {}
        placeholders = ", ".join("?" for _ in paths)
        with self.lock:
            cur = self.conn.execute(
                f"SELECT path, modified FROM tracks WHERE path IN ({placeholders})",
                list(paths),
            )
            return {row[0]: row[1] for row in cur.fetchall()}

    def fetch_all_modified(self) -> Dict[str, float]:
        """Loads the whole known-path map. Memory grows with the library."""
        with self.lock:
            cur = self.conn.execute("SELECT path, modified FROM tracks")
            return {row[0]: row[1] for row in cur.fetchall()}

    def upsert_tracks(self, records: Iterable[TrackRecord]) -> int:
        """
        Inserts or updates a batch of records keyed on path, in one transaction.
        Either every row is applied or none is.
        """
        rows = [self._record_to_row(r) for r in records]
        if not rows:
            return 0
        with self.lock:
            with self.conn:
                self.conn.executemany(UPSERT_SQL, rows)
        return len(rows)

    def count_tracks(self) -> int:
        with self.lock:
            return self.conn.execute("SELECT COUNT(*) FROM tracks").fetchone()[0]

    def library_stats(self) -> Dict[str, int]:
        """Totals used by the stats report."""
        with self.lock:
            row = self.conn.execute("""
                SELECT COUNT(*),
                       COALESCE(SUM(duration_seconds), 0),
                       COUNT(DISTINCT NULLIF(artist, '')),
                       COUNT(DISTINCT NULLIF(album, '')),
                       COUNT(DISTINCT NULLIF(genre, ''))
                FROM tracks
            """).fetchone()
        return {
            "total_tracks": row[0],
            "total_duration_seconds": row[1],
            "unique_artists": row[2],
            "unique_albums": row[3],
            "unique_genres": row[4],
        }

    def distinct_values(self, column: str) -> List[str]:
        """Sorted non-empty distinct values of one text column."""
        if column not in DISTINCT_COLUMNS:
            raise ValueError(f"Unsupported column: {column}")
        with self.lock:
            cur = self.conn.execute(
                f"SELECT DISTINCT {column} FROM tracks WHERE {column} != '' ORDER BY {column}"
            )
            return [row[0] for row in cur.fetchall()]

    def fetch_track(self, path: str) -> Optional[TrackRecord]:
        with self.lock:
            cur = self.conn.execute(
                f"SELECT {', '.join(INSERT_COLUMNS)} FROM tracks WHERE path = ?", (path,)
            )
            row = cur.fetchone()
        if row is None:
            return None
        values = dict(zip(INSERT_COLUMNS, row))
        values["tags"] = json.loads(values["tags"])
        return TrackRecord(**values)

    @staticmethod
    def _record_to_row(rec: TrackRecord) -> tuple:
        return (
            rec.path, rec.extension, rec.title, rec.artist, rec.album,
            rec.disc_number, rec.track_number, rec.year,
            rec.genre, rec.album_artist, rec.publisher, rec.catalog_number,
            rec.duration_seconds, rec.audio_bitrate, rec.overall_bitrate,
            rec.sample_rate, rec.bit_depth, rec.channels,
            json.dumps(rec.tags, sort_keys=True, ensure_ascii=False),
            rec.created, rec.modified,
        )
