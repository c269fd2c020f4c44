# pagesweep/config.py
from pathlib import Path
import os

from dotenv import load_dotenv

load_dotenv()

DATA_DIR = Path(os.getenv("PAGESWEEP_DATA_DIR", "./data")).resolve()
EXPORT_DIR = Path(os.getenv("PAGESWEEP_EXPORT_DIR", str(DATA_DIR / "exports"))).resolve()
DB_URL = os.getenv("PAGESWEEP_DB_URL") or f"sqlite:///{DATA_DIR / 'pagesweep.db'}"
ALLOWLIST_PATH = Path(os.getenv("PAGESWEEP_ALLOWLIST", "./rules/allowed-domains.json")).resolve()
SITES_PATH = Path(os.getenv("PAGESWEEP_SITES", "./rules/sites.yaml")).resolve()

# --- HTTP knobs (safe defaults) ---
USER_AGENT = os.getenv(
    "PAGESWEEP_UA",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0 Safari/537.36",
)
HTTP_TIMEOUT = float(os.getenv("PAGESWEEP_HTTP_TIMEOUT", "12"))     # seconds
HOST_DELAY = float(os.getenv("PAGESWEEP_HOST_DELAY", "1.0"))        # seconds between same-host requests
MAX_RETRIES = int(os.getenv("PAGESWEEP_MAX_RETRIES", "2"))          # 403/429 backoff rounds
RENDER_TIMEOUT_MS = int(os.getenv("PAGESWEEP_RENDER_TIMEOUT_MS", "45000"))


def ensure_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    EXPORT_DIR.mkdir(parents=True, exist_ok=True)
