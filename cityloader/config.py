# cityloader/config.py
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parent.parent

OUTPUT_DIR = Path(os.getenv("GEONAMES_OUTPUT_DIR") or PROJECT_ROOT / "data")
DEFAULT_COLLECTION = os.getenv("FIRESTORE_COLLECTION") or "cities"
DEFAULT_CREDENTIALS_PATH = PROJECT_ROOT / "credentials" / "firebase-service-account.json"
INDEX_FILE = PROJECT_ROOT / "firestore.indexes.json"

# Firestore caps a write batch at 500 operations; stay well below it
MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 450
DEFAULT_BATCH_SIZE = 400

# --resume-from values in this range are record ordinals, anything else a city id
MAX_RESUME_ORDINAL = 1_000_000


def processed_file_path(dataset_id: str, output_dir: Optional[Path] = None) -> Path:
    return Path(output_dir or OUTPUT_DIR) / f"processed-cities{dataset_id}.json"


def validate_batch_size(batch_size: int) -> int:
    if not isinstance(batch_size, int) or isinstance(batch_size, bool):
        raise ValueError(f"Batch size must be an integer, got {batch_size!r}")
    if batch_size < MIN_BATCH_SIZE or batch_size > MAX_BATCH_SIZE:
        raise ValueError(f"Batch size must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE}")
    return batch_size


def resolve_credentials_path(custom_path: Optional[str] = None) -> Path:
    """
    Pick the service-account file: explicit path, then FIREBASE_CREDENTIALS_PATH,
    then GOOGLE_APPLICATION_CREDENTIALS, then credentials/firebase-service-account.json.
    """
    candidate = (
        custom_path
        or os.getenv("FIREBASE_CREDENTIALS_PATH")
        or os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        or (DEFAULT_CREDENTIALS_PATH if DEFAULT_CREDENTIALS_PATH.exists() else None)
    )
    if not candidate:
        raise FileNotFoundError(
            "Firebase credentials path not found. Configure FIREBASE_CREDENTIALS_PATH or "
            "GOOGLE_APPLICATION_CREDENTIALS, or place credentials at "
            "credentials/firebase-service-account.json"
        )

    resolved = Path(candidate).expanduser().resolve()
    if not resolved.exists():
        raise FileNotFoundError(f"Credentials file does not exist: {resolved}")
    return resolved
