import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from mutagen import File as MutagenFile, MutagenError
from mutagen.apev2 import APEv2, APEBinaryValue, APEExtValue, APETextValue
from mutagen.id3 import Frame
from mutagen.mp4 import AtomDataType, MP4FreeForm
from pymediainfo import MediaInfo

from .. import config
from ..exceptions import MetadataExtractionError
from ..models import FailureKind, FileCandidate, TrackRecord
from .numbering import (
    DISC_NUMBER_CHAIN,
    TRACK_NUMBER_CHAIN,
    YEAR_CHAIN,
    TagSource,
    first_number,
)


class MetadataExtractor:
    """
    Turns one audio file into a TrackRecord.

    Strategies:
      - Container probe and tags: 'mutagen' (content-scored probe, every
        common tag format).
      - Technical properties: mutagen's stream info, with 'pymediainfo'
        filling whatever mutagen left at zero.

    Holds no per-file state, so one instance is shared by all workers.
    """

    def __init__(self, mediainfo_fallback: bool = True):
        self.mediainfo_fallback = mediainfo_fallback

    def extract(self, candidate: FileCandidate) -> TrackRecord:
        """
        Raises:
            MetadataExtractionError: kind tells unsupported / probe failed / no tags
        """
        path = candidate.path
        audio = self._probe(path)
        tags = self._select_tags(audio, path)

        items = list(tags.items())
        free_form = self._free_form_tags(items)
        source = TagSource(structured=self._structured_numbers(items), tags=free_form)

        record = TrackRecord(
            path=str(path),
            extension=path.suffix[1:],
            title=self._first_text(source, config.TITLE_KEYS),
            artist=self._first_text(source, config.ARTIST_KEYS),
            album=self._first_text(source, config.ALBUM_KEYS),
            album_artist=self._first_text(source, config.ALBUM_ARTIST_KEYS),
            genre=self._first_text(source, config.GENRE_KEYS),
            publisher=self._first_text(source, config.PUBLISHER_KEYS),
            catalog_number=self._first_text(source, config.CATALOG_NUMBER_KEYS),
            disc_number=first_number(DISC_NUMBER_CHAIN, source),
            track_number=first_number(TRACK_NUMBER_CHAIN, source),
            year=first_number(YEAR_CHAIN, source),
            tags=free_form,
            created=candidate.created,
            modified=candidate.modified,
        )
        self._read_properties(audio, candidate, record)
        return record

    # --- Probing ---

    def _probe(self, path: Path):
        try:
            audio = MutagenFile(str(path))
        except (MutagenError, OSError) as e:
            raise MetadataExtractionError(path, FailureKind.TAG_PROBE_FAILED, str(e)) from e
        if audio is None:
            raise MetadataExtractionError(path, FailureKind.UNSUPPORTED_CONTAINER)
        return audio

    def _select_tags(self, audio, path: Path):
        """Primary tag set of the container, else an APEv2 trailer if one exists."""
        if audio.tags is not None:
            return audio.tags
        try:
            return APEv2(str(path))
        except (MutagenError, OSError):
            raise MetadataExtractionError(path, FailureKind.NO_TAGS_PRESENT)

    # --- Tags ---

    def _free_form_tags(self, items: Sequence[Tuple[str, Any]]) -> Dict[str, str]:
        tags: Dict[str, str] = {}
        for key, value in items:
            tags[self._normalize_key(key)] = self._to_text(value)
        return tags

    def _normalize_key(self, key: str) -> str:
        """'TXXX:CATALOGNUMBER' -> 'CATALOGNUMBER', '----:com.apple.iTunes:ISRC' -> 'ISRC'."""
        for prefix in config.FREEFORM_KEY_PREFIXES:
            if key.startswith(prefix) and len(key) > len(prefix):
                return key[len(prefix):]
        return key

    def _to_text(self, value: Any) -> str:
        """
        Text form of one tag value. Binary payloads (pictures, byte arrays)
        become "" so the key is still recorded.
        """
        if isinstance(value, list):
            parts = [self._to_text(v) for v in value]
            return "; ".join(p for p in parts if p)
        if isinstance(value, MP4FreeForm):
            if value.dataformat == AtomDataType.UTF8:
                return bytes(value).decode("utf-8", errors="replace")
            return ""
        if isinstance(value, (bytes, bytearray)):
            return ""
        if isinstance(value, Frame):
            url = getattr(value, "url", None)
            if url is not None:
                # WXXX / WOAR and friends
                return url
            text = getattr(value, "text", None)
            if text is None:
                return ""
            if isinstance(text, str):
                # USLT / SYLT carry a single string
                return text
            return "; ".join(str(t) for t in text)
        if isinstance(value, APEBinaryValue):
            return ""
        if isinstance(value, APETextValue):
            return "; ".join(value)
        if isinstance(value, APEExtValue):
            return value.value
        if isinstance(value, tuple):
            # MP4 number pairs: (3, 12) -> '3/12', (3, 0) -> '3', (0, 12) -> '0/12'
            number, total = (tuple(value) + (0, 0))[:2]
            return f"{number}/{total}" if total else str(number)
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, (str, int, float)):
            return str(value)
        # ASF attributes
        inner = getattr(value, "value", None)
        if isinstance(inner, (str, int, float)) and not isinstance(inner, bool):
            return str(inner)
        return ""

    def _structured_numbers(self, items: Sequence[Tuple[str, Any]]) -> Dict[str, int]:
        """Numbers the tag library already parsed as integers."""
        numbers: Dict[str, int] = {}
        for key, value in items:
            first = value[0] if isinstance(value, list) and value else value

            if key in ("trkn", "disk") and isinstance(first, tuple) and first:
                numbers["track" if key == "trkn" else "disc"] = int(first[0])
            elif key == "WM/TrackNumber":
                inner = getattr(first, "value", None)
                if isinstance(inner, int) and not isinstance(inner, bool):
                    numbers["track"] = inner
            elif key == "TDRC" and isinstance(value, Frame) and value.text:
                year = getattr(value.text[0], "year", None)
                if year is not None:
                    numbers["year"] = year
        return numbers

    def _first_text(self, source: TagSource, keys: List[str]) -> str:
        for key in keys:
            value = source.lookup(key)
            if value:
                return value
        return ""

    # --- Properties ---

    def _read_properties(self, audio, candidate: FileCandidate, record: TrackRecord):
        info = getattr(audio, "info", None)
        length = float(getattr(info, "length", 0) or 0)

        record.duration_seconds = int(length)
        record.audio_bitrate = int(getattr(info, "bitrate", 0) or 0) // 1000
        record.sample_rate = int(getattr(info, "sample_rate", 0) or 0)
        record.bit_depth = int(getattr(info, "bits_per_sample", 0) or 0)
        record.channels = int(getattr(info, "channels", 0) or 0)
        if length > 0:
            record.overall_bitrate = round(candidate.size_bytes * 8 / length / 1000)

        missing = [
            name for name in ("duration_seconds", "audio_bitrate", "sample_rate", "bit_depth", "channels")
            if not getattr(record, name)
        ]
        if missing and self.mediainfo_fallback:
            self._fill_from_mediainfo(candidate.path, record, missing)

    def _fill_from_mediainfo(self, path: Path, record: TrackRecord, missing: List[str]):
        """Fills zeroed properties from MediaInfo. Any failure leaves them at zero."""
        try:
            props = self._extract_mediainfo(path)
        except Exception as e:
            logging.debug(f"MediaInfo failed for {path}: {e}")
            return

        for name in missing:
            if props.get(name):
                setattr(record, name, props[name])
        if not record.overall_bitrate and props.get("overall_bitrate"):
            record.overall_bitrate = props["overall_bitrate"]

    def _extract_mediainfo(self, path: Path) -> Dict[str, int]:
        """Parses the file with pymediainfo. Bitrates in kbps."""
        mi = MediaInfo.parse(str(path))
        data: Dict[str, int] = {}

        for track in mi.tracks:
            if track.track_type == "General":
                # MediaInfo duration is in milliseconds
                data["duration_seconds"] = _as_int(getattr(track, "duration", None)) // 1000
                data["overall_bitrate"] = _as_int(getattr(track, "overall_bit_rate", None)) // 1000
            elif track.track_type == "Audio" and "sample_rate" not in data:
                data["audio_bitrate"] = _as_int(getattr(track, "bit_rate", None)) // 1000
                data["sample_rate"] = _as_int(getattr(track, "sampling_rate", None))
                data["bit_depth"] = _as_int(getattr(track, "bit_depth", None))
                data["channels"] = _as_int(getattr(track, "channel_s", None))
        return data


def _as_int(value: Optional[Any]) -> int:
    """MediaInfo fields can be ints, floats or strings like '44100' / '2 / 1'."""
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    head = str(value).split("/")[0].strip()
    try:
        return int(float(head))
    except ValueError:
        return 0
