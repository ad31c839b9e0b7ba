"""
Catalog connection management.

Every sync run (and every stats/query call) gets its own connection. Inside
one run the walker thread and the batch writer share that connection, so it
is opened with check_same_thread=False and wrapped in a TrackStore whose
lock serializes every statement. Two runs never share a connection; SQLite's
WAL mode and busy timeout arbitrate between them.
"""
import sqlite3
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .ops import TrackStore
from .schema import init_schema

# Applied to every new connection.
CONNECTION_PRAGMAS = [
    "PRAGMA journal_mode=WAL;",      # readers never block the writer
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA temp_store=MEMORY;",
    "PRAGMA cache_size=-64000;",     # ~64MB per connection
    "PRAGMA busy_timeout=5000;",     # concurrent runs wait instead of failing
]


class DBManager:
    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        # Schema creation is check-then-insert; runs started together must not interleave it.
        self._schema_lock = threading.Lock()

    def connect(self) -> sqlite3.Connection:
        """
        Opens a new connection with the catalog pragmas and an up-to-date schema.
        The caller owns it and must close it.
        """
        logging.debug(f"Opening catalog connection: {self.db_path}")
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        try:
            for pragma in CONNECTION_PRAGMAS:
                conn.execute(pragma)
            with self._schema_lock:
                init_schema(conn)
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    @contextmanager
    def open_store(self) -> Iterator[TrackStore]:
        """A TrackStore on a private connection, closed on exit."""
        conn = self.connect()
        try:
            yield TrackStore(conn)
        finally:
            conn.close()
