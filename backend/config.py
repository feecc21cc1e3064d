import os
import secrets
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]


def _parse_bool(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return fallback


def _parse_csv(value: str | None, fallback: list[str]) -> list[str]:
    if not value:
        return fallback
    parsed = [item.strip() for item in value.split(",") if item.strip()]
    return parsed or fallback


def _parse_float(value: str | None, fallback: float) -> float:
    if not value:
        return fallback
    try:
        return float(value)
    except ValueError:
        return fallback


def _parse_store_backend(value: str | None) -> str:
    normalized = (value or "").strip().lower()
    if normalized in {"sheets", "google", "google_sheets"}:
        return "sheets"
    return "sqlite"


# -----------------------------
# Record store
# -----------------------------
STORE_BACKEND = _parse_store_backend(os.getenv("SCANMARK_STORE_BACKEND"))
DB_PATH = Path(os.getenv("SCANMARK_DB_PATH", BASE_DIR / "database" / "scanmark.db"))
STORE_TIMEOUT_SECONDS = _parse_float(os.getenv("SCANMARK_STORE_TIMEOUT_SECONDS"), 15.0)

GOOGLE_SHEETS_ID = os.getenv("SCANMARK_GOOGLE_SHEETS_ID", "").strip()
# Service-account key, either inline JSON or a path to the key file.
GOOGLE_CREDENTIALS_JSON = os.getenv("SCANMARK_GOOGLE_CREDENTIALS_JSON", "").strip()
GOOGLE_CREDENTIALS_FILE = os.getenv("SCANMARK_GOOGLE_CREDENTIALS_FILE", "").strip()

ROSTER_RANGE = os.getenv("SCANMARK_ROSTER_RANGE", "Form responses 1!A2:L1000").strip()
NAME_COLUMN = os.getenv("SCANMARK_NAME_COLUMN", "B").strip().upper()
EMAIL_COLUMN = os.getenv("SCANMARK_EMAIL_COLUMN", "D").strip().upper()
ROLL_COLUMN = os.getenv("SCANMARK_ROLL_COLUMN", "E").strip().upper()
SECTION_COLUMN = os.getenv("SCANMARK_SECTION_COLUMN", "F").strip().upper()
CODE_COLUMN = os.getenv("SCANMARK_CODE_COLUMN", "I").strip().upper()
STATUS_COLUMN = os.getenv("SCANMARK_STATUS_COLUMN", "K").strip().upper()
HIGHLIGHT_COLUMNS = os.getenv("SCANMARK_HIGHLIGHT_COLUMNS", "A:L").strip().upper()
LOGS_SHEET = os.getenv("SCANMARK_LOGS_SHEET", "Logs").strip()

# -----------------------------
# Auth
# -----------------------------
VOLUNTEER_ACCESS_CODE = os.getenv("SCANMARK_VOLUNTEER_ACCESS_CODE", "scanmark-volunteer").strip()
ADMIN_EMAILS = [e.lower() for e in _parse_csv(os.getenv("SCANMARK_ADMIN_EMAILS"), [])]
ADMIN_DOMAIN = os.getenv("SCANMARK_ADMIN_DOMAIN", "").strip().lower().lstrip("@")
# Never derived from the access code: every volunteer knows that one.
# Without a configured key, sessions last only as long as the process.
SIGNING_KEY = os.getenv("SCANMARK_SIGNING_KEY", "").strip() or secrets.token_urlsafe(32)
AUTH_TOKEN_TTL_SECONDS = int(os.getenv("SCANMARK_AUTH_TOKEN_TTL_SECONDS", "43200"))

CORS_ALLOW_ORIGINS = _parse_csv(
    os.getenv("SCANMARK_CORS_ALLOW_ORIGINS"),
    ["http://localhost:5173", "http://127.0.0.1:5173"],
)
CORS_ALLOW_METHODS = _parse_csv(
    os.getenv("SCANMARK_CORS_ALLOW_METHODS"),
    ["GET", "POST", "OPTIONS"],
)
CORS_ALLOW_HEADERS = _parse_csv(
    os.getenv("SCANMARK_CORS_ALLOW_HEADERS"),
    ["Authorization", "Content-Type", "Accept"],
)
CORS_ALLOW_CREDENTIALS = _parse_bool(os.getenv("SCANMARK_CORS_ALLOW_CREDENTIALS"), True)

# -----------------------------
# Scanning client
# -----------------------------
SERVER_URL = os.getenv("SCANMARK_SERVER_URL", "http://127.0.0.1:8000").strip().rstrip("/")
OFFLINE_DB_PATH = Path(os.getenv("SCANMARK_OFFLINE_DB_PATH", BASE_DIR / "scanner" / "offline.db"))
HTTP_TIMEOUT_SECONDS = _parse_float(os.getenv("SCANMARK_HTTP_TIMEOUT_SECONDS"), 10.0)
SYNC_INTERVAL_SECONDS = max(1.0, _parse_float(os.getenv("SCANMARK_SYNC_INTERVAL_SECONDS"), 30.0))
RESULT_DISPLAY_SECONDS = max(0.0, _parse_float(os.getenv("SCANMARK_RESULT_DISPLAY_SECONDS"), 3.0))
READER_DEBOUNCE_SECONDS = max(0.0, _parse_float(os.getenv("SCANMARK_READER_DEBOUNCE_SECONDS"), 2.0))
