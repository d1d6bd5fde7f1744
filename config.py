"""
Configuration for the stock-idea editor.
Centralized configuration, easy to modify. Secrets come from the
environment (or a local .env file), everything else lives here.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ── Base directories ────────────────────────────────────────────────────────
BASE_DIR = Path(__file__).parent
DATA_DIR = Path(os.getenv("STOCK_IDEAS_DATA_DIR", BASE_DIR / "data"))
LOGS_DIR = DATA_DIR / "logs"
OFFLINE_DIR = DATA_DIR / "offline"

for d in (DATA_DIR, LOGS_DIR, OFFLINE_DIR):
    d.mkdir(parents=True, exist_ok=True)

# ── Document store (Firestore REST) ─────────────────────────────────────────
FIRESTORE_PROJECT_ID = os.getenv("FIRESTORE_PROJECT_ID", "")
FIRESTORE_API_KEY = os.getenv("FIRESTORE_API_KEY", "")
FIRESTORE_URL_TEMPLATE = (
    "https://firestore.googleapis.com/v1/projects/{project}/databases/(default)/documents"
)
RECOMMENDATIONS_COLLECTION = "stockRecommendations"

DEFAULT_PAGE_SIZE = 1000
REQUEST_TIMEOUT = 15  # seconds

# "firestore" talks to the REST endpoint, "offline" uses the local mirror only
STORE_BACKEND = os.getenv(
    "STORE_BACKEND", "firestore" if FIRESTORE_API_KEY else "offline"
)

# ── Offline mirror ──────────────────────────────────────────────────────────
# Two logical tables, stored as plain JSON
OFFLINE_RECORDS_TABLE = "stock_ideas"
OFFLINE_BASELINES_TABLE = "stock_idea_baselines"

# ── File storage ────────────────────────────────────────────────────────────
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", f"{FIRESTORE_PROJECT_ID}.appspot.com")
STORAGE_BASE_URL = f"https://firebasestorage.googleapis.com/v0/b/{STORAGE_BUCKET}/o"
IMAGE_PATH_PREFIX = "stock-images/"
REPORT_PATH_PREFIX = "research-reports/"
IMAGE_MAX_BYTES = 5 * 1024 * 1024
REPORT_MAX_BYTES = 10 * 1024 * 1024
REPORT_CONTENT_TYPES = [
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/plain",
]

# ── Market data ─────────────────────────────────────────────────────────────
# Indian exchanges in yfinance format
EXCHANGE_SUFFIXES = {
    "NSE": ".NS",
    "BSE": ".BO",
}
QUOTE_HISTORY_PERIOD = "5d"
QUOTE_CACHE_SECONDS = 60

# ── Editor defaults ─────────────────────────────────────────────────────────
DEFAULT_USER_ID = os.getenv("STOCK_IDEAS_USER_ID", "admin")
DEFAULT_CREATED_BY = os.getenv("STOCK_IDEAS_CREATED_BY", "admin")
RECENT_UPDATES_LIMIT = 3

# ── Display ─────────────────────────────────────────────────────────────────
TERMINAL_WIDTH = 130

# ── Logging ─────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
