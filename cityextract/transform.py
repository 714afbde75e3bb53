# cityextract/transform.py
from __future__ import annotations
import json
from dataclasses import dataclass
from typing import IO, Iterable, Optional, Sequence

from .altnames import AltNameIndex
from .records import CityRecord

# GeoNames "geoname" table layout
MIN_COLUMNS = 19
COL_ID, COL_NAME, COL_ALTERNATE_NAMES = 0, 1, 3
COL_LAT, COL_LON = 4, 5
COL_COUNTRY = 8
COL_POPULATION = 14
COL_TIMEZONE = 17


@dataclass
class TransformStats:
    accepted: int = 0
    malformed: int = 0   # too few columns
    invalid: int = 0     # required field missing
    filtered: int = 0    # population / country predicate

    @property
    def dropped(self) -> int:
        return self.malformed + self.invalid + self.filtered


@dataclass(frozen=True)
class CityFilter:
    """Inclusion predicate; every bound is optional and inclusive"""
    min_population: Optional[int] = None
    max_population: Optional[int] = None
    countries: Sequence[str] = ()

    @classmethod
    def create(cls, min_population=None, max_population=None, countries: Iterable[str] = ()):
        normalized = tuple(c.strip().upper() for c in countries if c and c.strip())
        return cls(min_population, max_population, normalized)

    def keeps(self, record: CityRecord) -> bool:
        pop = record.population or 0
        if self.min_population is not None and pop < self.min_population:
            return False
        if self.max_population is not None and pop > self.max_population:
            return False
        if self.countries and record.country not in self.countries:
            return False
        return True


def _to_float(s: str) -> Optional[float]:
    try:
        return float(s)
    except ValueError:
        return None


def _to_int(s: str) -> int:
    try:
        return max(int(s), 0)
    except ValueError:
        return 0


def parse_line(line: str, alt_index: Optional[AltNameIndex] = None) -> Optional[CityRecord]:
    """
    Parse one cities*.txt line. Returns None when the line has too few
    columns; unparseable required values come back as None fields.
    """
    parts = line.rstrip("\r\n").split("\t")
    if len(parts) < MIN_COLUMNS:
        return None

    geoname_id = parts[COL_ID].strip() or None
    aliases = ",".join(a for a in parts[COL_ALTERNATE_NAMES].split(",") if a)

    return CityRecord(
        id=geoname_id,
        name=parts[COL_NAME] or None,
        country=parts[COL_COUNTRY] or "",
        lat=_to_float(parts[COL_LAT]),
        lon=_to_float(parts[COL_LON]),
        tz=parts[COL_TIMEZONE] or "",
        aliases=aliases,
        altNames=alt_index.get(geoname_id) if (alt_index is not None and geoname_id) else {},
        population=_to_int(parts[COL_POPULATION]),
    )


class JsonArrayWriter:
    """
    Writes objects as elements of a JSON array, one per line.

    What has been written so far is always a valid array once "]" is
    appended, so a reader can stop at any element boundary.

        with JsonArrayWriter(fp) as out:
            out.write({"id": "1"})
    """

    def __init__(self, sink: IO[str]):
        self.sink = sink
        self.count = 0
        self._opened = False
        self._closed = False

    def open(self):
        if not self._opened:
            self.sink.write("[\n")
            self._opened = True

    def write(self, obj: dict):
        self.open()
        payload = json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
        self.sink.write(f"  {payload}" if self.count == 0 else f",\n  {payload}")
        self.count += 1

    def close(self):
        if self._closed:
            return
        self.open()
        self.sink.write("\n]\n" if self.count else "]\n")
        self.sink.flush()
        self._closed = True

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        # leave an unterminated array on failure; the scanner drops the tail
        if exc_type is None:
            self.close()
        return False


def write_cities(
    lines: Iterable[str],
    sink: IO[str],
    alt_index: Optional[AltNameIndex] = None,
    city_filter: Optional[CityFilter] = None,
) -> TransformStats:
    """
    Stream cities*.txt lines into `sink` as a JSON array of city objects.
    Returns counters; `stats.accepted` is the number of objects written.
    """
    city_filter = city_filter or CityFilter()
    stats = TransformStats()

    with JsonArrayWriter(sink) as out:
        for line in lines:
            if not line.strip() or line.startswith("#"):
                continue

            record = parse_line(line, alt_index)
            if record is None:
                stats.malformed += 1
                continue
            if not record.is_valid():
                stats.invalid += 1
                continue
            if not city_filter.keeps(record):
                stats.filtered += 1
                continue

            out.write(record.to_dict())
            stats.accepted += 1

    return stats
