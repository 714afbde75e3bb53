# cityextract/altnames.py
from __future__ import annotations
from typing import Dict, Iterable, Optional

# GeoNames pseudo language codes that carry links, postal codes or
# airport/railway identifiers instead of names
NON_LINGUISTIC_CODES = {
    "link", "post", "iata", "icao", "faac", "abbr", "wkdt", "unlc", "tcid",
}
PREFERRED_MARKER = "1"


class AltNameIndex:
    """
    geonameid -> {language code -> alternate name}, built from
    alternateNamesV2.txt lines.

    Merge rule per (geonameid, language):
    - the first accepted name is kept
    - a later name replaces it only when its isPreferredName column is "1"

    Usage:
        index = AltNameIndex.from_lines(open("alternateNamesV2.txt"))
        index.get("3530597")   # {"en": "Mexico City", "es": "Ciudad de México", ...}
    """

    def __init__(self):
        self._names: Dict[str, Dict[str, str]] = {}
        self.accepted = 0
        self.ignored = 0

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> "AltNameIndex":
        index = cls()
        for line in lines:
            index.add_line(line)
        return index

    def add_line(self, line: str) -> bool:
        """Merge one raw line; returns False if the line was ignored"""
        line = line.rstrip("\r\n")
        if not line or line.startswith("#"):
            self.ignored += 1
            return False

        parts = line.split("\t")
        if len(parts) < 4:
            self.ignored += 1
            return False

        geoname_id = parts[1]
        lang = parts[2] or ""
        name = parts[3] or ""
        preferred = len(parts) > 4 and parts[4] == PREFERRED_MARKER

        if not _is_language_code(lang):
            self.ignored += 1
            return False

        self.add(geoname_id, lang, name, preferred)
        self.accepted += 1
        return True

    def add(self, geoname_id: str, lang: str, name: str, preferred: bool = False):
        names = self._names.setdefault(geoname_id, {})
        if not names.get(lang):
            names[lang] = name
        elif preferred:
            # several preferred names for one language: the last one read wins
            names[lang] = name

    def get(self, geoname_id: str) -> Dict[str, str]:
        """Copy of the names for a city, empty if it has none"""
        return dict(self._names.get(geoname_id, {}))

    def lookup(self, geoname_id: str, lang: str) -> Optional[str]:
        return self._names.get(geoname_id, {}).get(lang)

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {k: dict(v) for k, v in self._names.items()}

    def __len__(self):
        return len(self._names)

    def __contains__(self, geoname_id: str):
        return geoname_id in self._names

    def __repr__(self):
        return f"AltNameIndex({len(self)} cities, {self.accepted} names, {self.ignored} ignored)"


def _is_language_code(code: str) -> bool:
    if not code or len(code) < 2 or len(code) > 5:
        return False
    return code not in NON_LINGUISTIC_CODES
