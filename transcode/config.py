import os
from pathlib import Path
from typing import Dict, Optional, Tuple

from transcode.errors import ConfigurationError

BASE_DIR = Path(__file__).resolve().parents[1]

# Permanent storage: s3 / gcp / azure
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "s3")

TRANSLOADIT_AUTH_KEY = os.getenv("TRANSLOADIT_AUTH_KEY")
TRANSLOADIT_AUTH_SECRET = os.getenv("TRANSLOADIT_AUTH_SECRET")
TRANSLOADIT_API_URL = os.getenv("TRANSLOADIT_API_URL", "https://api2.transloadit.com")
# Empty means the worker polls instead of waiting for a webhook.
TRANSLOADIT_NOTIFY_URL = os.getenv("TRANSLOADIT_NOTIFY_URL") or None

# Names of credentials saved in the Transloadit account, per storage key
TRANSLOADIT_CREDENTIALS: Dict[str, Optional[str]] = {
    "store": os.getenv("TRANSLOADIT_STORE_CREDENTIALS"),
    "cache": os.getenv("TRANSLOADIT_CACHE_CREDENTIALS"),
}

S3_BUCKET = os.getenv("S3_BUCKET")
S3_REGION = os.getenv("S3_REGION", "us-east-1")
GCS_BUCKET = os.getenv("GCS_BUCKET")
AZURE_CONN_STR = os.getenv("AZURE_STORAGE_CONNECTION_STRING")
AZURE_CONTAINER = os.getenv("AZURE_CONTAINER")
STORE_PREFIX = os.getenv("STORE_PREFIX", "store")

# Where the demo app is reachable, so Transloadit can import cached uploads
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")

POLL_INTERVAL = float(os.getenv("POLL_INTERVAL", "1"))
POLL_BACKOFF = float(os.getenv("POLL_BACKOFF", "1.5"))
POLL_MAX_INTERVAL = float(os.getenv("POLL_MAX_INTERVAL", "10"))
POLL_TIMEOUT = float(os.getenv("POLL_TIMEOUT", "600"))

LOCAL_CACHE_DIR = BASE_DIR / "data" / "cache"
LOCAL_RECORDS_FILE = BASE_DIR / "data" / "records.json"
LOCAL_TASKS_FILE = BASE_DIR / "data" / "tasks.json"

# Ensure dirs exist (for local mode)
LOCAL_CACHE_DIR.mkdir(parents=True, exist_ok=True)
for _path in (LOCAL_RECORDS_FILE, LOCAL_TASKS_FILE):
    if not _path.exists():
        _path.write_text("[]")


def require_auth() -> Tuple[str, str]:
    if not TRANSLOADIT_AUTH_KEY or not TRANSLOADIT_AUTH_SECRET:
        raise ConfigurationError("The auth option is required (TRANSLOADIT_AUTH_KEY/TRANSLOADIT_AUTH_SECRET)")
    return TRANSLOADIT_AUTH_KEY, TRANSLOADIT_AUTH_SECRET


def credentials_for(storage_key: str, registry: Optional[Dict[str, Optional[str]]] = None) -> str:
    registry = TRANSLOADIT_CREDENTIALS if registry is None else registry
    credentials = registry.get(storage_key)
    if not credentials:
        raise ConfigurationError(f"credentials not registered for storage {storage_key!r}")
    return credentials
