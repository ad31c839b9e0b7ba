"""
Database schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1

def init_schema(conn: sqlite3.Connection):
    """
    Applies the core schema to the database.
    Idempotent: safe to run on every startup.
    """
    with conn:
        # 1. Version Tracking (For future migrations)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        # Initialize version if missing
        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. Track Table
        # Identity is the path. The id only exists for query consumers.
        conn.execute("""
        CREATE TABLE IF NOT EXISTS tracks (
            id                INTEGER PRIMARY KEY AUTOINCREMENT,
            path              TEXT NOT NULL UNIQUE,
            extension         TEXT NOT NULL,
            title             TEXT NOT NULL,
            artist            TEXT NOT NULL,
            album             TEXT NOT NULL,
            disc_number       INTEGER,
            track_number      INTEGER,
            year              INTEGER,
            genre             TEXT NOT NULL,
            album_artist      TEXT NOT NULL,
            publisher         TEXT NOT NULL,
            catalog_number    TEXT NOT NULL,
            duration_seconds  INTEGER NOT NULL,
            audio_bitrate     INTEGER NOT NULL,
            overall_bitrate   INTEGER NOT NULL,
            sample_rate       INTEGER NOT NULL,
            bit_depth         INTEGER NOT NULL,
            channels          INTEGER NOT NULL,
            tags              TEXT NOT NULL,      -- JSON object of free-form tags
            created           REAL NOT NULL,      -- epoch seconds
            modified          REAL NOT NULL       -- epoch seconds, compared during sync
        );
        """)

        # 3. Indices for Scanning and Querying
        conn.execute("CREATE INDEX IF NOT EXISTS idx_track_modified ON tracks(modified);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_track_artist_album ON tracks(artist, album);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_track_album_artist ON tracks(album_artist);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_track_album ON tracks(album);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_track_genre ON tracks(genre);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_track_year ON tracks(year);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_track_album_disc_track ON tracks(album, disc_number, track_number);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_track_extension ON tracks(extension);")

    logging.debug("Database schema initialized.")
