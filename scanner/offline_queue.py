import asyncio
import logging
import secrets
import sqlite3
import string
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from scanner.errors import StorageUnavailable

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_local_id() -> str:
    """Timestamp plus random suffix; unique per device for practical purposes."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"offline_{int(time.time() * 1000)}_{suffix}"


@dataclass(frozen=True)
class PendingAttendance:
    id: str
    code: str
    name: str
    timestamp: str
    synced: bool = False


@dataclass(frozen=True)
class CachedStudent:
    qr_id: str
    name: str
    email: str = ""
    roll_number: str = ""
    section: str = ""


class OfflineQueue:
    """
    Durable, device-local queue of scans captured without connectivity.

    Rows survive restarts and are kept after syncing; readers filter on
    the synced flag. The same file caches the roster for offline lookups.
    Public methods are coroutines; the SQLite work runs in a worker thread.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self._init_lock = threading.Lock()
        self._ready = False

    # -----------------------------
    # Storage plumbing
    # -----------------------------
    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path), timeout=5.0)

    def _run(self, fn, *args) -> Any:
        try:
            self._init_sync()
            return fn(*args)
        except (sqlite3.Error, OSError) as e:
            logger.error("Offline storage failure at %s: %s", self.db_path, e)
            raise StorageUnavailable(str(e)) from e

    def _init_sync(self) -> None:
        with self._init_lock:
            if self._ready:
                return
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._connect()
            try:
                conn.execute("""
                CREATE TABLE IF NOT EXISTS pending_attendance (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    code TEXT NOT NULL,
                    name TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    synced INTEGER NOT NULL DEFAULT 0
                )
                """)
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_pending_synced ON pending_attendance (synced, seq)"
                )
                conn.execute("""
                CREATE TABLE IF NOT EXISTS students (
                    qr_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT,
                    roll_number TEXT,
                    section TEXT
                )
                """)
                conn.commit()
            finally:
                conn.close()
            self._ready = True

    # -----------------------------
    # Queue
    # -----------------------------
    async def init(self) -> None:
        await asyncio.to_thread(self._run, lambda: None)

    async def enqueue(self, code: str, name: str, timestamp: str | None = None) -> str:
        stamp = timestamp or datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        return await asyncio.to_thread(self._run, self._enqueue, code, name, stamp)

    def _enqueue(self, code: str, name: str, stamp: str) -> str:
        local_id = new_local_id()
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO pending_attendance (id, code, name, timestamp, synced)
                VALUES (?, ?, ?, ?, 0)
                """,
                (local_id, code, name, stamp),
            )
            conn.commit()
        finally:
            conn.close()
        return local_id

    async def list_unsynced(self) -> list[PendingAttendance]:
        return await asyncio.to_thread(self._run, self._list_unsynced)

    def _list_unsynced(self) -> list[PendingAttendance]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT id, code, name, timestamp, synced
                FROM pending_attendance
                WHERE synced = 0
                ORDER BY seq
                """
            ).fetchall()
        finally:
            conn.close()
        return [PendingAttendance(r[0], r[1], r[2], r[3], bool(r[4])) for r in rows]

    async def count_unsynced(self) -> int:
        return len(await self.list_unsynced())

    async def mark_synced(self, local_id: str) -> None:
        await asyncio.to_thread(self._run, self._mark_synced, local_id)

    def _mark_synced(self, local_id: str) -> None:
        # Unknown or already-synced ids simply match nothing.
        conn = self._connect()
        try:
            conn.execute("UPDATE pending_attendance SET synced = 1 WHERE id = ?", (local_id,))
            conn.commit()
        finally:
            conn.close()

    # -----------------------------
    # Roster cache
    # -----------------------------
    async def store_roster(self, students: Iterable[CachedStudent]) -> int:
        return await asyncio.to_thread(self._run, self._store_roster, list(students))

    def _store_roster(self, students: list[CachedStudent]) -> int:
        conn = self._connect()
        try:
            with conn:
                conn.execute("DELETE FROM students")
                conn.executemany(
                    """
                    INSERT OR REPLACE INTO students (qr_id, name, email, roll_number, section)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [(s.qr_id, s.name, s.email, s.roll_number, s.section) for s in students if s.qr_id],
                )
        finally:
            conn.close()
        return len(students)

    async def list_students(self) -> list[CachedStudent]:
        return await asyncio.to_thread(self._run, self._list_students)

    def _list_students(self) -> list[CachedStudent]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT qr_id, name, email, roll_number, section FROM students ORDER BY name, qr_id"
            ).fetchall()
        finally:
            conn.close()
        return [CachedStudent(r[0], r[1], r[2] or "", r[3] or "", r[4] or "") for r in rows]

    async def find_student(self, code: str) -> CachedStudent | None:
        return await asyncio.to_thread(self._run, self._find_student, code)

    def _find_student(self, code: str) -> CachedStudent | None:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT qr_id, name, email, roll_number, section FROM students WHERE qr_id = ?",
                (code,),
            ).fetchone()
        finally:
            conn.close()
        if not row:
            return None
        return CachedStudent(row[0], row[1], row[2] or "", row[3] or "", row[4] or "")
