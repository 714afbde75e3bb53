# cityextract/records.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional

REQUIRED_FIELDS = [
    "id",
    "name",
    "country",
    "lat",
    "lon",
    "tz",
    "aliases",
    "altNames",
    "population",
]


@dataclass
class CityRecord:
    """
    One city as it is written to the processed JSON file and stored remotely.

    Fields that could not be parsed from the source line are left as None;
    such a record fails `is_valid()` and never reaches the output.
    """
    id: Optional[str]
    name: Optional[str]
    country: Optional[str]
    lat: Optional[float]
    lon: Optional[float]
    tz: Optional[str] = ""
    aliases: Optional[str] = ""
    altNames: Dict[str, str] = field(default_factory=dict)
    population: Optional[int] = 0

    def __repr__(self):
        pop = f"{self.population:,}" if self.population is not None else "?"
        return f"CityRecord({self.id}: {self.name}, {self.country}, {pop} people)"

    def to_dict(self) -> Dict:
        """Serialize in the field order of the processed file"""
        return {
            "id": self.id,
            "name": self.name,
            "country": self.country,
            "lat": self.lat,
            "lon": self.lon,
            "tz": self.tz,
            "aliases": self.aliases,
            "altNames": self.altNames,
            "population": self.population,
        }

    def is_valid(self) -> bool:
        return is_record_valid(self.to_dict())


def is_record_valid(record: Dict) -> bool:
    return all(record.get(f) is not None for f in REQUIRED_FIELDS)
