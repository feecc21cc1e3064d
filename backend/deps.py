import logging
import threading

from fastapi import Request

from backend import config
from backend.services.marking import MarkingService
from database.db import SqliteRecordStore, create_tables
from database.sheets import SheetsRecordStore
from database.store import RecordStore

logger = logging.getLogger(__name__)

_SERVICE_LOCK = threading.Lock()


def build_store() -> RecordStore:
    if config.STORE_BACKEND == "sheets":
        logger.info("Using Google Sheets record store %s", config.GOOGLE_SHEETS_ID)
        return SheetsRecordStore.from_config()
    create_tables()
    logger.info("Using local record store at %s", config.DB_PATH)
    return SqliteRecordStore()


def get_marking_service(request: Request) -> MarkingService:
    state = request.app.state
    with _SERVICE_LOCK:
        if getattr(state, "marking", None) is None:
            state.marking = MarkingService(build_store())
        return state.marking
