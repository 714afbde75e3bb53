#!/usr/bin/env python3
"""
GeoNames → Firestore CLI
Build the processed cities file and load it into Firestore
"""
import sys
import asyncio
import zipfile
import argparse
from pathlib import Path

from cityextract.geonames import DATASET_OPTIONS, DEFAULT_DATASET_ID
from cityextract.orchestrator import build_dataset
from cityloader.config import (
    DEFAULT_BATCH_SIZE, DEFAULT_COLLECTION, INDEX_FILE, OUTPUT_DIR,
    processed_file_path, validate_batch_size,
)
from cityloader.core import BatchLoader, ProgressEvent, ResumeDirective, UploadError
from cityloader.indexes import COMMON_INDEX_PRESETS, DEPLOY_INSTRUCTIONS, write_index_file
from cityloader.scanner import JsonArrayFile, count_json_array
from cityloader.store import FirestoreStore


def print_progress_bar(current: int, total: int, width: int = 50):
    """Print a nice progress bar"""
    filled = int(width * current / total) if total > 0 else 0
    bar = "█" * filled + "░" * (width - filled)
    percent = 100 * current / total if total > 0 else 0
    print(f"\r  Progress: |{bar}| {current}/{total} ({percent:.1f}%)", end="", flush=True)


class ConsoleProgress:
    """Prints one status line per committed batch"""

    def __init__(self, bar: bool = False):
        self.bar = bar

    def on_progress(self, event: ProgressEvent) -> None:
        if self.bar:
            print_progress_bar(event.uploaded, event.total)
            return
        print(
            f"Progress: {event.uploaded}/{event.total} ({event.percentage:.1f}%) | "
            f"Run: {event.run_uploaded}/{event.run_total} ({event.run_percentage:.1f}%) - "
            f"Record index: {event.last_ordinal} - Last ID: {event.last_id} - "
            f"Skipped: {event.skipped}"
        )


def parse_countries(value: str):
    return [c.strip().upper() for c in (value or "").split(",") if c.strip()]


def resume_directive(args):
    if getattr(args, "resume_from_ordinal", None) is not None:
        return ResumeDirective(from_ordinal=args.resume_from_ordinal)
    if getattr(args, "resume_from_id", None):
        return ResumeDirective(from_id=args.resume_from_id)
    return ResumeDirective.parse(getattr(args, "resume_from", None))


def print_resume_help(error: UploadError):
    cp = error.checkpoint
    print("\n⚠️  To resume from where it stopped:")
    if cp.last_ordinal:
        print(f"   geonames-firestore upload --resume-from-ordinal {cp.last_ordinal} ...")
        print(f"   This skips the first {cp.last_ordinal} records and continues from record {cp.last_ordinal + 1}")
        if cp.last_id:
            print(f"   (Last successfully uploaded city ID: {cp.last_id})")
    else:
        print("   Nothing was committed; run the same upload command again.")


def cmd_download(args):
    """Handle download command"""
    dataset_id = args.dataset or DEFAULT_DATASET_ID
    output_dir = Path(args.output_dir) if args.output_dir else OUTPUT_DIR
    print("Using existing file..." if args.use_existing else "Downloading data from GeoNames...")

    result = build_dataset(
        dataset_id,
        min_population=args.min_population,
        max_population=args.max_population,
        countries=parse_countries(args.countries),
        output_dir=output_dir,
        use_existing=args.use_existing,
        keep_archives=args.keep_archives,
    )
    where = "Using existing file" if result.from_cache else "File generated"
    print(f"✅ {where} at {result.output_path} with {result.count:,} records.")
    return result


def cmd_upload(args, file_path=None):
    """Handle upload command"""
    file_path = Path(file_path or getattr(args, "file", None)
                     or processed_file_path(args.dataset or DEFAULT_DATASET_ID))
    if not file_path.exists():
        raise FileNotFoundError(f"Processed file does not exist: {file_path}")

    validate_batch_size(args.batch_size)
    resume = resume_directive(args)
    store = FirestoreStore().initialize(args.credentials)
    loader = BatchLoader(store, args.collection, batch_size=args.batch_size,
                         observers=[ConsoleProgress(bar=getattr(args, "progress_bar", False))])

    print(f"Uploading data from {file_path} to Firestore collection '{args.collection}'...")
    if resume:
        print(f"Will resume from {resume}")

    try:
        result = asyncio.run(loader.run(JsonArrayFile(file_path), resume))
    except UploadError as e:
        print(f"\n❌ Error during upload: {e}")
        print_resume_help(e)
        raise

    if getattr(args, "progress_bar", False):
        print()
    if result.skipped:
        print(f"\nSkipped {result.skipped} records (already processed).")
    if resume and result.uploaded == 0:
        print("Nothing left to upload (all records skipped).")
    print(f"✅ Upload completed. Documents uploaded: {result.uploaded}.")
    return result


def cmd_full(args):
    """Handle full command: download, then upload the produced file"""
    validate_batch_size(args.batch_size)
    resume_directive(args)
    built = cmd_download(args)
    result = cmd_upload(args, file_path=built.output_path)
    print(f"✅ Complete process finished. {built.count:,} cities processed, {result.uploaded:,} uploaded.")


def cmd_count(args):
    """Handle count command"""
    path = Path(args.file)
    print(f"Records in {path}: {count_json_array(path):,}")


def cmd_indexes(args):
    """Handle indexes command"""
    fields = [f.strip() for f in args.fields.split(",") if f.strip()]
    output = Path(args.output) if args.output else INDEX_FILE
    config = write_index_file(args.collection, fields, output)

    print(f"✓ Index configuration file generated at: {output} ({len(config['indexes'])} indexes)")
    covered = [p["name"] for p in COMMON_INDEX_PRESETS if all(f in fields for f in p["fields"])]
    if covered:
        print("  Composite presets: " + ", ".join(covered))
    print("\n" + "\n".join(DEPLOY_INSTRUCTIONS))


def _add_download_args(p):
    p.add_argument("--dataset", choices=[o["id"] for o in DATASET_OPTIONS], default=DEFAULT_DATASET_ID,
                   help="GeoNames base dataset (" + ", ".join(o["label"] for o in DATASET_OPTIONS) + ")")
    p.add_argument("--min-population", type=int, help="Minimum population (defaults to the dataset's)")
    p.add_argument("--max-population", type=int, help="Maximum population")
    p.add_argument("--countries", default="", help="Comma-separated ISO country codes (default: all)")
    p.add_argument("--output-dir", help=f"Where archives and the processed file go (default: {OUTPUT_DIR})")
    p.add_argument("--use-existing", action="store_true",
                   help="Reuse an existing processed file instead of downloading again")
    p.add_argument("--keep-archives", action="store_true", help="Keep downloaded zip files")


def _add_upload_args(p, with_file=True):
    if with_file:
        p.add_argument("--file", help="Processed JSON file (default: processed file of --dataset)")
        p.add_argument("--dataset", default=DEFAULT_DATASET_ID, help="Dataset whose processed file to upload")
    p.add_argument("--collection", default=DEFAULT_COLLECTION, help="Firestore collection name")
    p.add_argument("--credentials", help="Service-account JSON (default: from environment)")
    p.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE, help="Firestore batch size (1-450)")
    p.add_argument("--progress-bar", action="store_true", help="Show a progress bar instead of per-batch lines")
    resume = p.add_mutually_exclusive_group()
    resume.add_argument("--resume-from", help="Record index (e.g. 17600) or city ID to resume after")
    resume.add_argument("--resume-from-ordinal", type=int, help="Skip the first N records")
    resume.add_argument("--resume-from-id", help="Skip records up to and including this city ID")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geonames-firestore",
        description="🌍 GeoNames → Firestore - Build and load city datasets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Build processed-cities15000.json for Mexico and Spain
  geonames-firestore download --dataset 15000 --countries MX,ES

  # Upload it
  geonames-firestore upload --file data/processed-cities15000.json

  # Resume after a failed batch
  geonames-firestore upload --resume-from-ordinal 17600

  # Everything in one go
  geonames-firestore full --dataset 5000 --min-population 20000

  # Index config for country + population queries
  geonames-firestore indexes --fields country,population
        """
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    _add_download_args(subparsers.add_parser("download", help="Download and process a GeoNames dataset"))
    _add_upload_args(subparsers.add_parser("upload", help="Upload a processed file to Firestore"))

    full_parser = subparsers.add_parser("full", help="Download, process and upload")
    _add_download_args(full_parser)
    _add_upload_args(full_parser, with_file=False)

    count_parser = subparsers.add_parser("count", help="Count records in a processed file")
    count_parser.add_argument("file", help="Processed JSON file")

    index_parser = subparsers.add_parser("indexes", help="Generate firestore.indexes.json")
    index_parser.add_argument("--fields", required=True, help="Comma-separated fields to index")
    index_parser.add_argument("--collection", default=DEFAULT_COLLECTION, help="Firestore collection name")
    index_parser.add_argument("--output", help=f"Output file (default: {INDEX_FILE})")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    commands = {
        "download": cmd_download,
        "upload": cmd_upload,
        "full": cmd_full,
        "count": cmd_count,
        "indexes": cmd_indexes,
    }

    try:
        commands[args.command](args)
    except UploadError:
        sys.exit(1)
    except (OSError, ValueError, RuntimeError, zipfile.BadZipFile) as e:
        print(f"❌ Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
