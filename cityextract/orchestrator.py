# cityextract/orchestrator.py
from __future__ import annotations
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import requests

from cityloader.config import OUTPUT_DIR
from cityloader.scanner import count_json_array

from .altnames import AltNameIndex
from .geonames import (
    ALT_NAMES_ARCHIVE, ALT_NAMES_ENTRY,
    archive_url, download_if_missing, get_dataset, iter_archive_lines,
)
from .transform import CityFilter, TransformStats, write_cities


@dataclass
class BuildResult:
    output_path: Path
    count: int
    from_cache: bool = False
    stats: Optional[TransformStats] = None


def load_alt_names(output_dir: Path, keep_archive: bool = False) -> AltNameIndex:
    """
    Download and index alternateNamesV2. Any failure here only costs the
    altNames enrichment, so it is reported and an empty index returned.
    """
    zip_path = output_dir / ALT_NAMES_ARCHIVE
    try:
        download_if_missing(archive_url(ALT_NAMES_ARCHIVE), zip_path)
        index = AltNameIndex.from_lines(iter_archive_lines(zip_path, ALT_NAMES_ENTRY))
    except (requests.RequestException, zipfile.BadZipFile, OSError, ValueError) as e:
        print(f"⚠️  Error processing alternate names: {e}. Continuing without them.")
        return AltNameIndex()

    if not keep_archive:
        zip_path.unlink(missing_ok=True)
    print(f"✅ Loaded {len(index):,} cities with alternate names")
    return index


def build_dataset(
    dataset_id: str,
    min_population: Optional[int] = None,
    max_population: Optional[int] = None,
    countries: Iterable[str] = (),
    output_dir: Optional[Path] = None,
    use_existing: bool = False,
    keep_archives: bool = False,
) -> BuildResult:
    """
    Produce `processed-cities{id}.json` from the GeoNames dump.

    min_population falls back to the dataset's own threshold and output_dir
    to OUTPUT_DIR. The file is written under a .part name and only renamed
    once complete, so a failed run never leaves a truncated file behind.
    """
    dataset = get_dataset(dataset_id)
    name = f"cities{dataset['id']}"
    output_dir = Path(output_dir or OUTPUT_DIR)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / f"processed-{name}.json"

    if use_existing and output_path.exists():
        size_mb = output_path.stat().st_size / (1024 * 1024)
        print(f"📄 Found existing processed file: {output_path} ({size_mb:.2f} MB)")
        return BuildResult(output_path, count_json_array(output_path), from_cache=True)

    zip_path = output_dir / f"{name}.zip"
    download_if_missing(archive_url(zip_path.name), zip_path)

    alt_index = load_alt_names(output_dir, keep_archive=keep_archives)

    city_filter = CityFilter.create(
        min_population=min_population if min_population is not None else dataset["min_population"],
        max_population=max_population,
        countries=countries,
    )

    print(f"🔀 Filtering {name} → {output_path}")
    tmp_path = output_path.with_suffix(output_path.suffix + ".part")
    try:
        with open(tmp_path, "w", encoding="utf-8") as sink:
            stats = write_cities(
                iter_archive_lines(zip_path, f"{name}.txt"), sink,
                alt_index=alt_index, city_filter=city_filter,
            )
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    tmp_path.replace(output_path)

    if not keep_archives:
        zip_path.unlink(missing_ok=True)

    print(f"✅ Wrote {stats.accepted:,} cities (dropped {stats.dropped:,})")
    return BuildResult(output_path, stats.accepted, stats=stats)
