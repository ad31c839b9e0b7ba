import sqlite3
import struct
import wave
from pathlib import Path

import pytest
from mutagen.flac import FLAC
from mutagen.id3 import TALB, TIT2, TPE1
from mutagen.mp4 import MP4
from mutagen.wave import WAVE

from music_indexer.database.ops import TrackStore
from music_indexer.database.schema import init_schema


@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    c = sqlite3.connect(":memory:", check_same_thread=False)
    init_schema(c)
    try:
        yield c
    finally:
        c.close()

@pytest.fixture
def store(conn):
    """Returns a TrackStore attached to the in-memory DB."""
    return TrackStore(conn)


def write_wav(path: Path, seconds: int = 1, rate: int = 8000, channels: int = 1):
    """Writes a silent 16-bit PCM WAV file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with wave.open(str(path), "wb") as w:
        w.setnchannels(channels)
        w.setsampwidth(2)
        w.setframerate(rate)
        w.writeframes(b"\x00\x00" * rate * seconds * channels)


@pytest.fixture
def make_track(tmp_path):
    """
    Factory for real audio files: make_track("a/b.wav", frames=[...]).
    frames=None writes a WAV with no tag chunk at all.
    """
    def _make(name: str, frames=(), root: Path = tmp_path) -> Path:
        path = root / name
        write_wav(path)
        if frames is not None:
            audio = WAVE(str(path))
            audio.add_tags()
            for frame in frames:
                audio.tags.add(frame)
            audio.save()
        return path
    return _make


def basic_frames(title: str = "Song", artist: str = "Artist", album: str = "Album"):
    return [
        TIT2(encoding=3, text=[title]),
        TPE1(encoding=3, text=[artist]),
        TALB(encoding=3, text=[album]),
    ]


def write_flac(path: Path, seconds: int = 1, rate: int = 44100, channels: int = 2, bits: int = 16):
    """Writes a FLAC header with only a STREAMINFO block (no audio frames)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    total_samples = rate * seconds
    packed = (rate << 44) | ((channels - 1) << 41) | ((bits - 1) << 36) | total_samples
    streaminfo = (
        struct.pack(">HH", 4096, 4096)
        + b"\x00" * 6                    # min/max frame size unknown
        + packed.to_bytes(8, "big")
        + b"\x00" * 16                   # MD5 unset
    )
    header = bytes([0x80]) + len(streaminfo).to_bytes(3, "big")
    path.write_bytes(b"fLaC" + header + streaminfo)


def _atom(name: bytes, payload: bytes) -> bytes:
    return struct.pack(">I4s", 8 + len(payload), name) + payload


def write_m4a(path: Path, seconds: int = 1, timescale: int = 44100):
    """Writes a minimal M4A: ftyp plus a moov with one sound track and no sample data."""
    path.parent.mkdir(parents=True, exist_ok=True)
    duration = timescale * seconds
    mvhd = _atom(b"mvhd", b"\x00" * 12 + struct.pack(">II", timescale, duration) + b"\x00" * 80)
    mdhd = _atom(b"mdhd", b"\x00" * 12 + struct.pack(">II", timescale, duration) + b"\x00" * 4)
    hdlr = _atom(b"hdlr", b"\x00" * 8 + b"soun" + b"\x00" * 12 + b"SoundHandler\x00")
    trak = _atom(b"trak", _atom(b"mdia", mdhd + hdlr))
    ftyp = _atom(b"ftyp", b"M4A " + b"\x00\x00\x02\x00" + b"M4A mp42isom")
    path.write_bytes(ftyp + _atom(b"moov", mvhd + trak))


@pytest.fixture
def make_flac(tmp_path):
    """make_flac("a.flac", {"TITLE": "x"}): Vorbis comments on a real FLAC header."""
    def _make(name: str, comments=None, root: Path = tmp_path) -> Path:
        path = root / name
        write_flac(path)
        if comments is not None:
            audio = FLAC(str(path))
            audio.add_tags()
            for key, value in comments.items():
                audio.tags[key] = value
            audio.save()
        return path
    return _make


@pytest.fixture
def make_m4a(tmp_path):
    """make_m4a("a.m4a", {"\\xa9nam": ["x"], "trkn": [(1, 2)]}): MP4 atoms on a minimal file."""
    def _make(name: str, items=None, root: Path = tmp_path) -> Path:
        path = root / name
        write_m4a(path)
        if items is not None:
            audio = MP4(str(path))
            audio.add_tags()
            for key, value in items.items():
                audio.tags[key] = value
            audio.save()
        return path
    return _make
