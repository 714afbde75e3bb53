# cityextract/geonames.py
import io
import zipfile
from pathlib import Path
from typing import Iterator, Optional

import requests

GEONAMES_BASE_URL = "https://download.geonames.org/export/dump"
ALT_NAMES_ARCHIVE = "alternateNamesV2.zip"
ALT_NAMES_ENTRY = "alternateNamesV2.txt"

DATASET_OPTIONS = [
    {"id": "500",   "label": "cities500 (population > 500)",                 "min_population": 500},
    {"id": "1000",  "label": "cities1000 (population > 1,000)",              "min_population": 1000},
    {"id": "5000",  "label": "cities5000 (population > 5,000)",              "min_population": 5000},
    {"id": "15000", "label": "cities15000 (population > 15,000 or capitals)", "min_population": 15000},
]
DEFAULT_DATASET_ID = "15000"

CHUNK_SIZE = 1 << 20


def get_dataset(dataset_id: str) -> dict:
    for option in DATASET_OPTIONS:
        if option["id"] == str(dataset_id):
            return option
    raise ValueError(f"Unknown dataset: {dataset_id}")


def archive_url(filename: str) -> str:
    return f"{GEONAMES_BASE_URL}/{filename}"


def download_if_missing(url: str, path: Path, timeout: float = 60.0) -> bool:
    """
    Stream `url` to `path` unless it is already there.
    Returns True if a download happened.
    """
    path = Path(path)
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)

    print(f"⬇️  Downloading {path.name} from GeoNames…")
    tmp = path.with_suffix(path.suffix + ".part")
    with requests.get(url, stream=True, timeout=timeout) as r:
        r.raise_for_status()
        try:
            with open(tmp, "wb") as fh:
                for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                    fh.write(chunk)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
    tmp.replace(path)
    print(f"✅ Saved to {path}")
    return True


def locate_entry(zf: zipfile.ZipFile, preferred_name: str) -> Optional[str]:
    names = zf.namelist()
    if preferred_name in names:
        return preferred_name
    return next((n for n in names if n.endswith(".txt")), None)


def iter_archive_lines(zip_path: Path, preferred_name: str) -> Iterator[str]:
    """Yield the lines (without newline) of a text entry inside a zip archive"""
    with zipfile.ZipFile(zip_path) as zf:
        entry = locate_entry(zf, preferred_name)
        if entry is None:
            raise FileNotFoundError(f"{preferred_name} not found inside {zip_path}")
        with zf.open(entry) as raw:
            for line in io.TextIOWrapper(raw, encoding="utf-8", newline="\n"):
                yield line.rstrip("\r\n")
