from fastapi import APIRouter

from backend.config import (
    HTTP_TIMEOUT_SECONDS,
    RESULT_DISPLAY_SECONDS,
    STORE_BACKEND,
    SYNC_INTERVAL_SECONDS,
)

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/config/client")
def client_config():
    # Scanning devices read these to keep their timers in line with the server.
    return {
        "store_backend": STORE_BACKEND,
        "sync_interval_seconds": SYNC_INTERVAL_SECONDS,
        "result_display_seconds": RESULT_DISPLAY_SECONDS,
        "http_timeout_seconds": HTTP_TIMEOUT_SECONDS,
    }
