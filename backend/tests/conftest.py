import pytest
from fastapi.testclient import TestClient

import backend.config as config
import backend.main as main
import database.db as db
from backend.services.marking import MarkingService


@pytest.fixture()
def store(tmp_path, monkeypatch):
    test_db = tmp_path / "scanmark_test.db"

    # Point DB to a temp file for isolation.
    monkeypatch.setattr(config, "DB_PATH", test_db)
    monkeypatch.setattr(db, "DB_PATH", test_db)

    db.create_tables()
    return db.SqliteRecordStore()


@pytest.fixture()
def service(store):
    return MarkingService(store)


@pytest.fixture()
def client(service, monkeypatch):
    monkeypatch.setattr(main.app.state, "marking", service)
    with TestClient(main.app) as c:
        yield c


def _login(client, email: str, name: str) -> dict:
    res = client.post(
        "/auth/login",
        json={"email": email, "name": name, "access_code": config.VOLUNTEER_ACCESS_CODE},
    )
    assert res.status_code == 200
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


@pytest.fixture()
def auth_headers(client):
    return _login(client, "volunteer@example.org", "Vera Volunteer")


@pytest.fixture()
def admin_headers(client, monkeypatch):
    monkeypatch.setattr(config, "ADMIN_EMAILS", ["chair@example.org"])
    return _login(client, "chair@example.org", "Chair Person")


@pytest.fixture()
def student_row(store):
    """Read one roster row straight from the test database."""

    def read(row_index: int):
        conn = db.connect_db()
        try:
            return conn.execute(
                "SELECT row_index, full_name, qr_id, attendance, highlighted FROM students WHERE row_index = ?",
                (row_index,),
            ).fetchone()
        finally:
            conn.close()

    return read
