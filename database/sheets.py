import json
import logging
import re
import threading
from pathlib import Path

import gspread
import requests
from google.auth.exceptions import GoogleAuthError
from gspread.exceptions import GSpreadException
from gspread.utils import ValueInputOption

from backend import config
from database.store import (
    AttendanceRecord,
    AttendanceStatus,
    AuditLogEntry,
    RecordStoreError,
    coerce_status,
)

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

# Light green, applied to the whole roster row once it is marked.
HIGHLIGHT_FORMAT = {"backgroundColor": {"red": 0.8, "green": 1.0, "blue": 0.8}}

_STORE_ERRORS = (GSpreadException, requests.RequestException, GoogleAuthError)
_RANGE_RE = re.compile(r"^(?:'?(?P<sheet>[^!']+)'?!)?(?P<col>[A-Z]+)(?P<row>\d+)?(?::[A-Z]+\d*)?$")


def column_index(letter: str) -> int:
    """Zero-based index of a column letter: A -> 0, K -> 10, AA -> 26."""
    index = 0
    for ch in letter.strip().upper():
        if not "A" <= ch <= "Z":
            raise ValueError(f"Invalid column letter: {letter!r}")
        index = index * 26 + (ord(ch) - ord("A") + 1)
    if index == 0:
        raise ValueError("Column letter is required.")
    return index - 1


def parse_range(range_name: str) -> tuple[str, int, int]:
    """Split 'Sheet!A2:L1000' into (sheet title, first column index, first row)."""
    match = _RANGE_RE.match(range_name.strip())
    if not match or not match.group("sheet"):
        raise ValueError(f"Range must name a sheet, e.g. 'Sheet1!A2:L1000': {range_name!r}")
    return match.group("sheet"), column_index(match.group("col")), int(match.group("row") or 1)


def _cell(row: list[str], index: int) -> str:
    return str(row[index]).strip() if 0 <= index < len(row) else ""


class SheetsRecordStore:
    """
    Record store backed by a Google spreadsheet.

    The roster sheet is read as a whole range and written cell by cell;
    audit entries are appended to the logs sheet. Worksheet handles are
    opened lazily and reused.
    """

    def __init__(self, client: gspread.Client, spreadsheet_id: str):
        self._client = client
        self._spreadsheet_id = spreadsheet_id
        self._sheet_title, self._first_col, self._first_row = parse_range(config.ROSTER_RANGE)
        self._roster_range = config.ROSTER_RANGE.split("!", 1)[1]
        self._lock = threading.Lock()
        self._spreadsheet: gspread.Spreadsheet | None = None
        self._worksheets: dict[str, gspread.Worksheet] = {}

    @classmethod
    def from_config(cls) -> "SheetsRecordStore":
        if not config.GOOGLE_SHEETS_ID:
            raise RuntimeError("SCANMARK_GOOGLE_SHEETS_ID is not set")

        if config.GOOGLE_CREDENTIALS_JSON:
            info = json.loads(config.GOOGLE_CREDENTIALS_JSON)
            # Keys pasted into env vars often carry literal "\n" sequences.
            if isinstance(info.get("private_key"), str):
                info["private_key"] = info["private_key"].replace("\\n", "\n")
            client = gspread.service_account_from_dict(info, scopes=SCOPES)
        elif config.GOOGLE_CREDENTIALS_FILE:
            client = gspread.service_account(filename=Path(config.GOOGLE_CREDENTIALS_FILE), scopes=SCOPES)
        else:
            raise RuntimeError("Google service-account credentials are not configured")

        client.http_client.set_timeout(config.STORE_TIMEOUT_SECONDS)
        return cls(client, config.GOOGLE_SHEETS_ID)

    # -----------------------------
    # Worksheet handles
    # -----------------------------
    def _worksheet(self, title: str) -> gspread.Worksheet:
        # Each lookup is a metadata request against the rate-limited API.
        with self._lock:
            if title not in self._worksheets:
                if self._spreadsheet is None:
                    self._spreadsheet = self._client.open_by_key(self._spreadsheet_id)
                self._worksheets[title] = self._spreadsheet.worksheet(title)
            return self._worksheets[title]

    def _col_offset(self, letter: str) -> int:
        return column_index(letter) - self._first_col

    # -----------------------------
    # RecordStore
    # -----------------------------
    def read_roster(self) -> list[AttendanceRecord]:
        try:
            rows = self._worksheet(self._sheet_title).get(self._roster_range)
        except _STORE_ERRORS as e:
            raise RecordStoreError(f"roster read failed: {e}") from e

        name_i = self._col_offset(config.NAME_COLUMN)
        email_i = self._col_offset(config.EMAIL_COLUMN)
        roll_i = self._col_offset(config.ROLL_COLUMN)
        section_i = self._col_offset(config.SECTION_COLUMN)
        code_i = self._col_offset(config.CODE_COLUMN)
        status_i = self._col_offset(config.STATUS_COLUMN)

        return [
            AttendanceRecord(
                qr_id=_cell(row, code_i),
                name=_cell(row, name_i),
                attendance=coerce_status(_cell(row, status_i)),
                row_index=self._first_row + idx,
                email=_cell(row, email_i),
                roll_number=_cell(row, roll_i),
                section=_cell(row, section_i),
            )
            for idx, row in enumerate(rows or [])
        ]

    def write_status(self, row_index: int, status: AttendanceStatus) -> None:
        try:
            self._worksheet(self._sheet_title).update(
                values=[[status]],
                range_name=f"{config.STATUS_COLUMN}{row_index}",
                value_input_option=ValueInputOption.raw,
            )
        except _STORE_ERRORS as e:
            raise RecordStoreError(f"status write failed for row {row_index}: {e}") from e

    def highlight_row(self, row_index: int) -> None:
        first, _, last = config.HIGHLIGHT_COLUMNS.partition(":")
        cells = f"{first}{row_index}:{last or first}{row_index}"
        try:
            self._worksheet(self._sheet_title).format(cells, HIGHLIGHT_FORMAT)
        except _STORE_ERRORS as e:
            raise RecordStoreError(f"highlight failed for row {row_index}: {e}") from e

    def append_audit(self, entry: AuditLogEntry) -> None:
        try:
            self._worksheet(config.LOGS_SHEET).append_row(
                entry.to_row(),
                value_input_option=ValueInputOption.raw,
            )
        except _STORE_ERRORS as e:
            raise RecordStoreError(f"audit append failed: {e}") from e

    def read_audit(self) -> list[AuditLogEntry]:
        try:
            rows = self._worksheet(config.LOGS_SHEET).get("A2:F")
        except _STORE_ERRORS as e:
            raise RecordStoreError(f"audit read failed: {e}") from e
        return [AuditLogEntry.from_row([str(v) for v in row]) for row in rows or [] if row]
