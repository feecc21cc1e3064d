import httpx
import pytest

import backend.config as config
import backend.main as main
import database.db as db
from backend.security import issue_session_token
from backend.services.marking import MarkingService
from scanner.client import MarkingClient
from scanner.offline_queue import OfflineQueue


@pytest.fixture()
def store(tmp_path, monkeypatch):
    test_db = tmp_path / "scanmark_server.db"
    monkeypatch.setattr(config, "DB_PATH", test_db)
    monkeypatch.setattr(db, "DB_PATH", test_db)
    db.create_tables()
    return db.SqliteRecordStore()


@pytest.fixture()
def server(store, monkeypatch):
    monkeypatch.setattr(main.app.state, "marking", MarkingService(store))
    return main.app


@pytest.fixture()
def make_client(server):
    """Build a MarkingClient that talks to the in-process app; call inside a coroutine."""
    token, _ = issue_session_token("scanner@example.org", name="Scanner Device", role="volunteer")

    def factory(token_override: str | None = None) -> MarkingClient:
        return MarkingClient(
            "http://testserver",
            token_override or token,
            transport=httpx.ASGITransport(app=server),
        )

    return factory


@pytest.fixture()
def queue(tmp_path):
    return OfflineQueue(tmp_path / "device" / "offline.db")


class FakeClient:
    """Stands in for MarkingClient; answers from a per-code script."""

    def __init__(self, answers=None):
        self.answers = answers or {}
        self.calls: list[str] = []

    async def mark(self, code):
        self.calls.append(code)
        answer = self.answers.get(code)
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return await answer()
        return answer


@pytest.fixture()
def fake_client():
    return FakeClient()
