import argparse
import logging
import os
import sys
from pathlib import Path

from . import config
from .config import ScanConfig
from .core import MusicIndexerApp
from .exceptions import SyncFailedError

def setup_logging(log_file: Path, verbose: bool):
    """Sets up logging to both console and a file next to the catalog."""
    log_level = logging.DEBUG if verbose else logging.INFO

    log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Silence chatty libraries
    logging.getLogger("mutagen").setLevel(logging.WARNING)
    logging.getLogger("pymediainfo").setLevel(logging.WARNING)

def default_db_path() -> Path:
    return Path(os.environ.get("MUSIC_INDEXER_DB", config.DEFAULT_DB_NAME))

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Music Indexer: keep a track catalog in sync with a music folder")
    p.add_argument("--db", type=Path, default=None, help="SQLite catalog path (default: $MUSIC_INDEXER_DB or ./music_catalog.db)")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = p.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Index new and changed files under a music folder")
    scan.add_argument("music_path", type=Path, nargs="?", default=None, help="Music folder (default: $MUSIC_PATH)")
    scan.add_argument("--batch-size", type=int, default=None, help="Records per upsert")
    scan.add_argument("--path-batch-size", type=int, default=None, help="Paths per change-detection query")
    scan.add_argument("--workers", type=int, default=None, help="Max simultaneous extractions")
    scan.add_argument("--preload", action="store_true", help="Load every known path up front instead of batched queries")
    scan.add_argument("--no-progress", action="store_true", help="Disable the progress bar")
    scan.add_argument("--no-mediainfo", action="store_true", help="Do not fall back to MediaInfo for missing audio properties")

    sub.add_parser("stats", help="Print catalog statistics")

    return p.parse_args(argv)

def build_scan_config(args) -> ScanConfig:
    """Environment first, then CLI flags on top."""
    cfg = ScanConfig.from_env()
    if args.music_path is not None:
        cfg.music_path = str(args.music_path.resolve())
    if args.batch_size is not None:
        cfg.batch_size = args.batch_size
    if args.path_batch_size is not None:
        cfg.path_batch_size = args.path_batch_size
    if args.workers is not None:
        cfg.max_in_flight = args.workers
    cfg.use_optimized_scanning = not args.preload
    cfg.show_progress = not args.no_progress
    cfg.mediainfo_fallback = not args.no_mediainfo
    return cfg

def main(argv=None):
    args = parse_args(argv)

    db_path = (args.db or default_db_path()).resolve()
    setup_logging(db_path.parent / "music_indexer.log", args.verbose)

    app = MusicIndexerApp(db_path)

    if args.command == "stats":
        if not db_path.exists():
            logging.error(f"Database not found at {db_path}.")
            sys.exit(1)
        stats = app.stats()
        for key, value in stats.items():
            print(f"{key}: {value}")
        return

    try:
        cfg = build_scan_config(args)
        cfg.validate()
    except ValueError as e:
        logging.error(f"Invalid configuration: {e}")
        sys.exit(2)

    logging.info("=== Music Indexer Started ===")
    logging.info(f"Library: {cfg.music_path}")
    logging.info(f"Catalog: {db_path}")

    try:
        result = app.sync(cfg)
    except KeyboardInterrupt:
        logging.warning("Scan cancelled by user.")
        sys.exit(1)
    except SyncFailedError as e:
        logging.error(f"Scan failed: {e} ({len(e.pending)} records not written)")
        sys.exit(1)
    except Exception:
        logging.exception("Fatal error during scan.")
        sys.exit(1)

    print(
        f"{result.files_scanned} files scanned, {result.records_processed} tracks processed "
        f"({result.files_failed} unreadable, {result.files_unsupported} not audio)"
    )

if __name__ == "__main__":
    main()
