from dataclasses import dataclass, replace
from typing import Any, Literal, Protocol

AttendanceStatus = Literal["Absent", "Present"]
AuditAction = Literal["marked_present"]

PRESENT: AttendanceStatus = "Present"
ABSENT: AttendanceStatus = "Absent"
MARKED_PRESENT: AuditAction = "marked_present"


class RecordStoreError(Exception):
    """The remote row store could not be read or written."""


def coerce_status(value: str | None) -> AttendanceStatus:
    # Anything other than an exact "Present" cell counts as not yet marked.
    if (value or "").strip() == PRESENT:
        return PRESENT
    return ABSENT


@dataclass(frozen=True)
class AttendanceRecord:
    qr_id: str
    name: str
    attendance: AttendanceStatus
    row_index: int
    email: str = ""
    roll_number: str = ""
    section: str = ""

    def as_present(self) -> "AttendanceRecord":
        return replace(self, attendance=PRESENT)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "rollNumber": self.roll_number,
            "section": self.section,
            "qrId": self.qr_id,
            "attendance": self.attendance,
            "rowIndex": self.row_index,
        }


@dataclass(frozen=True)
class AuditLogEntry:
    operator_id: str
    operator_name: str
    code: str
    subject_name: str
    timestamp: str
    action: AuditAction = MARKED_PRESENT

    def to_row(self) -> list[str]:
        return [
            self.operator_id,
            self.operator_name,
            self.code,
            self.subject_name,
            self.timestamp,
            self.action,
        ]

    @classmethod
    def from_row(cls, row: list[str]) -> "AuditLogEntry":
        padded = list(row) + [""] * (6 - len(row))
        return cls(
            operator_id=padded[0],
            operator_name=padded[1],
            code=padded[2],
            subject_name=padded[3],
            timestamp=padded[4],
            action=MARKED_PRESENT,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "volunteerId": self.operator_id,
            "volunteerName": self.operator_name,
            "studentId": self.code,
            "studentName": self.subject_name,
            "timestamp": self.timestamp,
            "action": self.action,
        }


class RecordStore(Protocol):
    """
    Row-oriented store holding the roster and the append-only audit log.

    Implementations expose no locking; every method may raise
    RecordStoreError on backend or transport failure.
    """

    def read_roster(self) -> list[AttendanceRecord]: ...

    def write_status(self, row_index: int, status: AttendanceStatus) -> None: ...

    def highlight_row(self, row_index: int) -> None: ...

    def append_audit(self, entry: AuditLogEntry) -> None: ...

    def read_audit(self) -> list[AuditLogEntry]: ...
