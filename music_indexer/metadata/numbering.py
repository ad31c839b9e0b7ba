"""
Disc number, track number and year derivation.

Each number is resolved by an ordered chain of small extractor functions;
the first one that yields a value wins. Chains work on a TagSource, so
they can be exercised without opening any file.

Order for every number:
  1. structured integer field from the tag set (MP4 'trkn' pairs, ASF ints,
     ID3 timestamps)
  2. the format's "N/Total" string field, numerator taken
  3. vendor alias keys in the free-form tag dictionary, same parsing

Nothing found means None. Zero is a real value and is returned as such.
"""
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .. import config

_LEADING_INT = re.compile(r"^\s*(\d+)")


@dataclass
class TagSource:
    # Integers the tag library already parsed, keyed 'track' / 'disc' / 'year'.
    structured: Dict[str, int] = field(default_factory=dict)
    # Free-form tag dictionary as stored on the record.
    tags: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self._lower = {k.lower(): v for k, v in self.tags.items()}

    def lookup(self, key: str) -> Optional[str]:
        """Case-insensitive free-form lookup. Empty strings count as missing."""
        value = self._lower.get(key.lower())
        return value if value else None


Extractor = Callable[[TagSource], Optional[int]]


def parse_numerator(text: Optional[str]) -> Optional[int]:
    """
    '3/12' -> 3, '03' -> 3, '2019-05-01' -> 2019, 'A1' -> None.
    """
    if not text:
        return None
    head = text.split("/", 1)[0]
    m = _LEADING_INT.match(head)
    return int(m.group(1)) if m else None


def structured(name: str) -> Extractor:
    def extract(source: TagSource) -> Optional[int]:
        return source.structured.get(name)
    return extract


def slash_string(keys: Sequence[str]) -> Extractor:
    def extract(source: TagSource) -> Optional[int]:
        for key in keys:
            value = parse_numerator(source.lookup(key))
            if value is not None:
                return value
        return None
    return extract


# Same parsing as the string stage; kept separate so the chain reads in order.
alias_lookup = slash_string


TRACK_NUMBER_CHAIN: List[Extractor] = [
    structured("track"),
    slash_string(config.TRACK_STRING_KEYS),
    alias_lookup(config.TRACK_ALIAS_KEYS),
]

DISC_NUMBER_CHAIN: List[Extractor] = [
    structured("disc"),
    slash_string(config.DISC_STRING_KEYS),
    alias_lookup(config.DISC_ALIAS_KEYS),
]

YEAR_CHAIN: List[Extractor] = [
    structured("year"),
    slash_string(config.YEAR_STRING_KEYS),
    alias_lookup(config.YEAR_ALIAS_KEYS),
]


def first_number(chain: Sequence[Extractor], source: TagSource) -> Optional[int]:
    for extractor in chain:
        value = extractor(source)
        if value is not None:
            return value
    return None
