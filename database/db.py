import sqlite3
from typing import Iterable

from backend.config import DB_PATH, STORE_TIMEOUT_SECONDS
from database.store import (
    AttendanceRecord,
    AttendanceStatus,
    AuditLogEntry,
    RecordStoreError,
    coerce_status,
)

# Sheet rows start at 2 (row 1 holds the header); local rows mimic that.
FIRST_ROW_INDEX = 2


def connect_db():
    conn = sqlite3.connect(str(DB_PATH), timeout=STORE_TIMEOUT_SECONDS, check_same_thread=False)
    conn.execute("PRAGMA journal_mode = WAL;")
    return conn


def create_tables():
    conn = connect_db()
    cursor = conn.cursor()

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS students (
        row_index INTEGER PRIMARY KEY,
        full_name TEXT NOT NULL,
        email TEXT,
        roll_number TEXT,
        section TEXT,
        qr_id TEXT NOT NULL,
        attendance TEXT NOT NULL DEFAULT 'Absent',
        highlighted INTEGER NOT NULL DEFAULT 0,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """)

    # Append-only audit trail; rows are never updated or deleted.
    cursor.execute("""
    CREATE TABLE IF NOT EXISTS attendance_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        volunteer_id TEXT NOT NULL,
        volunteer_name TEXT NOT NULL,
        student_id TEXT NOT NULL,
        student_name TEXT NOT NULL,
        timestamp TEXT NOT NULL,         -- ISO-8601, server assigned
        action TEXT NOT NULL
    )
    """)

    conn.commit()
    conn.close()


# -----------------------------
# Roster seeding
# -----------------------------
def add_student(
    full_name: str,
    qr_id: str,
    *,
    email: str = "",
    roll_number: str = "",
    section: str = "",
    attendance: str = "Absent",
) -> int:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("SELECT COALESCE(MAX(row_index), ?) FROM students", (FIRST_ROW_INDEX - 1,))
    row_index = int(cur.fetchone()[0]) + 1
    cur.execute("""
        INSERT INTO students (row_index, full_name, email, roll_number, section, qr_id, attendance)
        VALUES (?, ?, ?, ?, ?, ?, ?)
    """, (row_index, full_name, email, roll_number, section, qr_id, attendance))
    conn.commit()
    conn.close()
    return row_index


def import_roster(rows: Iterable[dict]) -> int:
    """Bulk-load registration rows (keys: name, qrId, email, rollNumber, section)."""
    count = 0
    for row in rows:
        name = str(row.get("name") or "").strip()
        qr_id = str(row.get("qrId") or "").strip()
        if not name or not qr_id:
            continue
        add_student(
            name,
            qr_id,
            email=str(row.get("email") or "").strip(),
            roll_number=str(row.get("rollNumber") or "").strip(),
            section=str(row.get("section") or "").strip(),
        )
        count += 1
    return count


# -----------------------------
# Record store backed by the local database
# -----------------------------
class SqliteRecordStore:
    """
    Local stand-in for the shared spreadsheet.

    Offers the same row-addressed operations as the sheet (no
    compare-and-swap), so marking behaves identically against either.
    """

    def read_roster(self) -> list[AttendanceRecord]:
        try:
            conn = connect_db()
            try:
                cur = conn.cursor()
                cur.execute("""
                    SELECT row_index, full_name, email, roll_number, section, qr_id, attendance
                    FROM students
                    ORDER BY row_index
                """)
                rows = cur.fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise RecordStoreError(f"roster read failed: {e}") from e

        return [
            AttendanceRecord(
                qr_id=r[5] or "",
                name=r[1] or "",
                attendance=coerce_status(r[6]),
                row_index=int(r[0]),
                email=r[2] or "",
                roll_number=r[3] or "",
                section=r[4] or "",
            )
            for r in rows
        ]

    def write_status(self, row_index: int, status: AttendanceStatus) -> None:
        self._execute(
            """
            UPDATE students
            SET attendance = ?, updated_at = CURRENT_TIMESTAMP
            WHERE row_index = ?
            """,
            (status, row_index),
            what="status write",
        )

    def highlight_row(self, row_index: int) -> None:
        self._execute(
            "UPDATE students SET highlighted = 1 WHERE row_index = ?",
            (row_index,),
            what="highlight",
        )

    def append_audit(self, entry: AuditLogEntry) -> None:
        self._execute(
            """
            INSERT INTO attendance_logs (
                volunteer_id, volunteer_name, student_id, student_name, timestamp, action
            )
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            tuple(entry.to_row()),
            what="audit append",
        )

    def read_audit(self) -> list[AuditLogEntry]:
        try:
            conn = connect_db()
            try:
                cur = conn.cursor()
                cur.execute("""
                    SELECT volunteer_id, volunteer_name, student_id, student_name, timestamp, action
                    FROM attendance_logs
                    ORDER BY id
                """)
                rows = cur.fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise RecordStoreError(f"audit read failed: {e}") from e
        return [AuditLogEntry.from_row(list(r)) for r in rows]

    def _execute(self, sql: str, params: tuple, *, what: str) -> None:
        try:
            conn = connect_db()
            try:
                conn.execute(sql, params)
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise RecordStoreError(f"{what} failed: {e}") from e
