import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from database.store import (
    PRESENT,
    AttendanceRecord,
    AuditLogEntry,
    RecordStore,
    RecordStoreError,
)

logger = logging.getLogger(__name__)

MSG_MARKED = "Student marked present successfully"
MSG_NOT_FOUND = "Student not found"
MSG_ALREADY_MARKED = "Student already marked present"
MSG_UPDATE_FAILED = "Failed to update attendance"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class MarkResult:
    success: bool
    message: str
    student: AttendanceRecord | None = None

    @property
    def duplicate(self) -> bool:
        return not self.success and self.student is not None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.student is not None:
            body["student"] = self.student.to_dict()
        return body


class KeyedLock:
    """One mutex per key; entries are dropped once no caller holds or waits on them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, waiters = self._locks.get(key, (threading.Lock(), 0))
            self._locks[key] = (lock, waiters + 1)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                _, waiters = self._locks[key]
                if waiters <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, waiters - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class MarkingService:
    """
    Marks roster rows present and records who did it.

    The store has no compare-and-swap, so the read-check-write sequence is
    serialised per code inside this process. Separate server processes can
    still race on the same code.
    """

    def __init__(self, store: RecordStore, *, clock: Callable[[], str] = utc_now_iso):
        self.store = store
        self._clock = clock
        self._locks = KeyedLock()

    def mark_present(self, code: str, operator_id: str, operator_name: str) -> MarkResult:
        with self._locks.hold(code):
            try:
                # Row index is resolved fresh on every call; never cached.
                student = self._find(code)
                if student is None:
                    return MarkResult(False, MSG_NOT_FOUND)

                if student.attendance == PRESENT:
                    return MarkResult(False, MSG_ALREADY_MARKED, student)

                self.store.write_status(student.row_index, PRESENT)
            except RecordStoreError:
                logger.exception("Marking %s failed against the record store", code)
                return MarkResult(False, MSG_UPDATE_FAILED)

            self._highlight(student)
            self._log_action(
                AuditLogEntry(
                    operator_id=operator_id,
                    operator_name=operator_name,
                    code=code,
                    subject_name=student.name,
                    timestamp=self._clock(),
                )
            )

        logger.info("%s marked present by %s (row %d)", code, operator_id, student.row_index)
        return MarkResult(True, MSG_MARKED, student.as_present())

    def _find(self, code: str) -> AttendanceRecord | None:
        for record in self.store.read_roster():
            if record.qr_id == code:
                return record
        return None

    def _highlight(self, student: AttendanceRecord) -> None:
        try:
            self.store.highlight_row(student.row_index)
        except Exception:
            logger.warning("Could not highlight row %d for %s", student.row_index, student.qr_id, exc_info=True)

    def _log_action(self, entry: AuditLogEntry) -> None:
        # A mark that already landed is never undone because the log write failed.
        try:
            self.store.append_audit(entry)
        except Exception:
            logger.error("Audit append failed for %s by %s", entry.code, entry.operator_id, exc_info=True)

    # -----------------------------
    # Read-only views
    # -----------------------------
    def get_students(self) -> list[AttendanceRecord]:
        return self.store.read_roster()

    def get_stats(self) -> dict[str, int | float]:
        try:
            roster = self.store.read_roster()
        except RecordStoreError:
            logger.exception("Stats read failed")
            return {"totalStudents": 0, "presentStudents": 0, "absentStudents": 0, "attendanceRate": 0}

        total = len(roster)
        present = sum(1 for r in roster if r.attendance == PRESENT)
        rate = round(present * 100.0 / total, 1) if total else 0
        return {
            "totalStudents": total,
            "presentStudents": present,
            "absentStudents": total - present,
            "attendanceRate": rate,
        }

    def get_recent_logs(self, limit: int = 10) -> list[AuditLogEntry]:
        try:
            entries = self.store.read_audit()
        except RecordStoreError:
            logger.exception("Recent logs read failed")
            return []
        if limit <= 0:
            return []
        return list(reversed(entries[-limit:]))
