import argparse
import csv
import logging
from pathlib import Path

from backend import config
from backend.logging_config import configure_logging
from database import db

logger = logging.getLogger(__name__)

# Header spellings accepted for each roster field; the first match wins.
FIELD_HEADERS = {
    "name": ("name", "full name", "full_name"),
    "qrId": ("qrid", "qr id", "qr_id", "code"),
    "email": ("email", "email address"),
    "rollNumber": ("rollnumber", "roll number", "roll_number", "roll"),
    "section": ("section",),
}


def read_roster_csv(path: Path) -> list[dict]:
    """Rows of a registration export keyed by roster field name."""
    with path.open(newline="", encoding="utf-8-sig") as fh:
        reader = csv.DictReader(fh)
        headers = {h.strip().lower(): h for h in reader.fieldnames or []}
        columns = {}
        for field, names in FIELD_HEADERS.items():
            match = next((headers[n] for n in names if n in headers), None)
            if match is not None:
                columns[field] = match
        if "name" not in columns or "qrId" not in columns:
            raise ValueError(f"{path} needs a name column and a QR code column")
        return [{field: row.get(header) or "" for field, header in columns.items()} for row in reader]


def import_file(path: Path) -> int:
    db.create_tables()
    count = db.import_roster(read_roster_csv(path))
    logger.info("Imported %d roster rows from %s into %s", count, path, db.DB_PATH)
    return count


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Load a registration CSV into the local roster database.")
    parser.add_argument("csv_file", type=Path, help="Export with name and QR code columns")
    args = parser.parse_args(argv)

    configure_logging()
    if config.STORE_BACKEND != "sqlite":
        parser.error("the local roster is only used with SCANMARK_STORE_BACKEND=sqlite")
    try:
        count = import_file(args.csv_file)
    except (OSError, ValueError) as e:
        parser.error(str(e))
    print(f"Imported {count} students.")


if __name__ == "__main__":
    main()
