#!/usr/bin/env python

import argparse
import sqlite3
from pathlib import Path

from music_indexer.database.ops import TrackStore


def connect_db(db_path: Path) -> sqlite3.Connection:
    if not db_path.exists():
        raise SystemExit(f"DB not found: {db_path}")
    return sqlite3.connect(db_path)


def format_duration(seconds: int) -> str:
    hours, rem = divmod(int(seconds), 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"


def show_stats(store: TrackStore):
    stats = store.library_stats()
    print("Catalog statistics:")
    print(f"  tracks:         {stats['total_tracks']}")
    print(f"  total duration: {format_duration(stats['total_duration_seconds'])}")
    print(f"  artists:        {stats['unique_artists']}")
    print(f"  albums:         {stats['unique_albums']}")
    print(f"  genres:         {stats['unique_genres']}")


def show_track(store: TrackStore, path: Path):
    track = store.fetch_track(str(path))
    if track is None:
        print(f"No track found for path: {path}")
        return

    print("Track:")
    print(f"  path:          {track.path}")
    print(f"  title:         {track.title}")
    print(f"  artist:        {track.artist}")
    print(f"  album:         {track.album}")
    print(f"  album_artist:  {track.album_artist}")
    print(f"  disc/track:    {track.disc_number if track.disc_number is not None else '-'}"
          f"/{track.track_number if track.track_number is not None else '-'}")
    print(f"  year:          {track.year if track.year is not None else ''}")
    print(f"  genre:         {track.genre}")
    print(f"  duration:      {format_duration(track.duration_seconds)}")
    print(f"  audio:         {track.sample_rate} Hz, {track.bit_depth} bit, {track.channels} ch, {track.audio_bitrate} kbps")

    if track.tags:
        print("\n  Tags:")
        for key in sorted(track.tags):
            print(f"    {key.ljust(24)} {track.tags[key]}")


def list_values(store: TrackStore, column: str):
    values = store.distinct_values(column)
    if not values:
        print(f"No {column} values in catalog.")
        return
    for value in values:
        print(value)


def parse_args():
    p = argparse.ArgumentParser(description="Query helper for music_catalog SQLite DB.")
    p.add_argument("--db", required=True, help="Path to music_catalog.db")
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--stats", action="store_true", help="Show track/duration/artist/album/genre totals")
    group.add_argument("--track", help="Show the stored record for a file path")
    group.add_argument("--artists", action="store_true", help="List distinct artists")
    group.add_argument("--albums", action="store_true", help="List distinct albums")
    group.add_argument("--genres", action="store_true", help="List distinct genres")
    return p.parse_args()


def main():
    args = parse_args()
    db_path = Path(args.db).resolve()
    conn = connect_db(db_path)
    store = TrackStore(conn)

    try:
        if args.stats:
            show_stats(store)
        elif args.track:
            show_track(store, Path(args.track).resolve())
        elif args.artists:
            list_values(store, "artist")
        elif args.albums:
            list_values(store, "album")
        elif args.genres:
            list_values(store, "genre")
    finally:
        conn.close()


if __name__ == "__main__":
    main()
