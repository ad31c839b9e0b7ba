import os
import sqlite3
import threading
import time
from pathlib import Path

import pytest

from music_indexer.config import ScanConfig
from music_indexer.core import MusicIndexerApp, SyncOrchestrator, SyncState, start_sync
from music_indexer.database import retry
from music_indexer.database.ops import TrackStore
from music_indexer.exceptions import SyncFailedError
from music_indexer.models import FileCandidate, ScanResult, TrackRecord

from conftest import basic_frames


@pytest.fixture(autouse=True)
def no_backoff_sleep(monkeypatch):
    monkeypatch.setattr(retry.time, "sleep", lambda s: None)


@pytest.fixture
def library(tmp_path, make_track):
    root = tmp_path / "Music"
    make_track("Band/Debut/01.wav", frames=basic_frames("One", "Band", "Debut"), root=root)
    make_track("Band/Debut/02.wav", frames=basic_frames("Two", "Band", "Debut"), root=root)
    make_track("Other/Single/a.wav", frames=basic_frames("A", "Other", "Single"), root=root)
    return root


def scan_config(root, **overrides) -> ScanConfig:
    options = dict(
        music_path=str(root),
        show_progress=False,
        mediainfo_fallback=False,
        batch_size=2,
        path_batch_size=2,
        max_in_flight=2,
        channel_capacity=4,
    )
    options.update(overrides)
    return ScanConfig(**options)


def test_first_sync_stores_every_track(store, library):
    orch = SyncOrchestrator(store, scan_config(library))
    result = orch.run()

    assert result == ScanResult(files_scanned=3, records_processed=3, files_changed=3)
    assert orch.state is SyncState.COMPLETED
    assert store.count_tracks() == 3

    rec = store.fetch_track(str(library / "Band" / "Debut" / "02.wav"))
    assert rec.title == "Two"
    assert rec.album == "Debut"
    assert rec.extension == "wav"

    snap = orch.progress.snapshot()
    assert snap.total_files == 3
    assert snap.files_processed == 3


def test_second_sync_without_changes_writes_nothing(store, library):
    SyncOrchestrator(store, scan_config(library)).run()
    result = SyncOrchestrator(store, scan_config(library)).run()

    assert result.files_scanned == 3
    assert result.records_processed == 0
    assert store.count_tracks() == 3


def test_only_new_or_newer_files_are_processed(store, tmp_path, make_track):
    root = tmp_path / "Music"
    a = make_track("A.wav", frames=basic_frames("A"), root=root)
    b = make_track("B.wav", frames=basic_frames("B"), root=root)
    os.utime(a, (1_700_000_000, 1_700_000_000))
    os.utime(b, (1_700_000_000, 1_700_000_000))
    # B already synced with the same mtime
    store.upsert_tracks([TrackRecord(path=str(b), extension="wav", title="Old B", modified=1_700_000_000)])

    result = SyncOrchestrator(store, scan_config(root)).run()

    assert result.files_scanned == 2
    assert result.records_processed == 1
    assert store.fetch_track(str(a)).title == "A"
    assert store.fetch_track(str(b)).title == "Old B"


def test_touched_file_is_reindexed(store, library):
    SyncOrchestrator(store, scan_config(library)).run()

    target = library / "Other" / "Single" / "a.wav"
    st = target.stat()
    os.utime(target, (st.st_atime, st.st_mtime + 60))

    result = SyncOrchestrator(store, scan_config(library)).run()

    assert result.records_processed == 1
    assert store.count_tracks() == 3
    assert store.fetch_track(str(target)).modified == st.st_mtime + 60


def test_preload_mode_gives_same_result(store, library):
    first = SyncOrchestrator(store, scan_config(library, use_optimized_scanning=False)).run()
    second = SyncOrchestrator(store, scan_config(library, use_optimized_scanning=False)).run()

    assert first.records_processed == 3
    assert second.records_processed == 0


def test_bad_files_are_counted_not_fatal(store, library, make_track):
    make_track("Band/Debut/untagged.wav", frames=None, root=library)
    (library / "Band" / "Debut" / "folder.txt").write_text("not audio")

    result = SyncOrchestrator(store, scan_config(library)).run()

    assert result.files_scanned == 5
    assert result.records_processed == 3
    assert result.files_failed == 1
    assert result.files_unsupported == 1
    # Failed files are not recorded, so they are retried next run
    assert store.fetch_track(str(library / "Band" / "Debut" / "untagged.wav")) is None


class BrokenWriteStore(TrackStore):
    def upsert_tracks(self, records):
        raise sqlite3.OperationalError("disk I/O error")


def test_store_failure_fails_the_run(conn, library):
    orch = SyncOrchestrator(BrokenWriteStore(conn), scan_config(library))

    with pytest.raises(SyncFailedError) as exc:
        orch.run()

    assert orch.state is SyncState.FAILED
    assert len(exc.value.pending) == 2
    assert exc.value.progress.files_processed == 0


class BrokenReadStore(TrackStore):
    def fetch_modified_by_paths(self, paths):
        raise sqlite3.OperationalError("database is locked")


def test_detection_failure_fails_the_run(conn, library):
    orch = SyncOrchestrator(BrokenReadStore(conn), scan_config(library))

    with pytest.raises(SyncFailedError):
        orch.run()
    assert orch.state is SyncState.FAILED


def test_missing_root_raises(store, tmp_path):
    orch = SyncOrchestrator(store, scan_config(tmp_path / "nowhere"))

    with pytest.raises(FileNotFoundError):
        orch.run()
    assert orch.state is SyncState.IDLE


def test_invalid_config_rejected_before_walking(store, library):
    with pytest.raises(ValueError):
        SyncOrchestrator(store, scan_config(library, batch_size=0)).run()


def test_start_sync_persists_to_disk(tmp_path, library):
    db_path = tmp_path / "catalog.db"

    result = start_sync(db_path, scan_config(library))
    assert result.records_processed == 3

    stats = MusicIndexerApp(db_path).stats()
    assert stats["total_tracks"] == 3
    assert stats["unique_artists"] == 2
    assert stats["unique_albums"] == 2


def test_flac_and_m4a_are_indexed(store, tmp_path, make_flac, make_m4a):
    root = tmp_path / "Music"
    make_flac("a/1.flac", {"TITLE": "Flac Song", "TRACKNUMBER": "3/12"}, root=root)
    make_m4a("a/2.m4a", {"\xa9nam": ["Mp4 Song"], "trkn": [(4, 12)]}, root=root)

    result = SyncOrchestrator(store, scan_config(root)).run()

    assert result.records_processed == 2
    assert result.files_failed == 0
    assert store.fetch_track(str(root / "a" / "1.flac")).track_number == 3
    assert store.fetch_track(str(root / "a" / "2.m4a")).title == "Mp4 Song"


def test_concurrent_syncs_on_one_app(tmp_path, make_track):
    """Two runs through the same app must not share or close each other's connection."""
    roots = [tmp_path / "A", tmp_path / "B"]
    for root in roots:
        for i in range(15):
            make_track(f"{i:02d}.wav", frames=basic_frames(f"{root.name}{i}"), root=root)

    app = MusicIndexerApp(tmp_path / "catalog.db")
    start = threading.Barrier(2)
    results, errors = {}, []

    def run(root):
        start.wait()
        try:
            results[root.name] = app.sync(scan_config(root, batch_size=1, path_batch_size=1))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=run, args=(root,)) for root in roots]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert errors == []
    assert results["A"].records_processed == 15
    assert results["B"].records_processed == 15
    assert app.stats()["total_tracks"] == 30
    assert app.runs == []
    assert app.current is None


class FailOnWriteStore(TrackStore):
    """Every lookup reports 'unchanged' except for the real file; writes fail."""

    def __init__(self, conn, write_failed: threading.Event):
        super().__init__(conn)
        self.write_failed = write_failed
        self.lookups = 0

    def fetch_modified_by_paths(self, paths):
        self.lookups += 1
        return {p: 1e12 for p in paths if "unchanged" in p}

    def upsert_tracks(self, records):
        self.write_failed.set()
        raise sqlite3.OperationalError("disk I/O error")


class SlowWalker:
    """One real file, then a long run of already-synced paths."""

    def __init__(self, first: Path, write_failed: threading.Event, extra_batches: int = 50):
        self.first = first
        self.write_failed = write_failed
        self.extra_batches = extra_batches

    def count_files(self, root):
        return 1 + self.extra_batches

    def iter_batches(self, root, width):
        st = self.first.stat()
        yield [FileCandidate(self.first, st.st_size, st.st_mtime, st.st_ctime)]
        self.write_failed.wait(timeout=5)
        for i in range(self.extra_batches):
            time.sleep(0.01)
            yield [FileCandidate(Path(f"/music/unchanged/{i}.flac"), 1, 1.0, 1.0)]


def test_walk_stops_once_the_writer_fails(conn, tmp_path, make_track):
    first = make_track("first.wav", frames=basic_frames())
    write_failed = threading.Event()
    store = FailOnWriteStore(conn, write_failed)
    orch = SyncOrchestrator(
        store,
        scan_config(tmp_path, batch_size=1, path_batch_size=1),
        walker=SlowWalker(first, write_failed),
    )

    with pytest.raises(SyncFailedError):
        orch.run()

    # The walker gave up long before querying every remaining batch
    assert store.lookups < 20
