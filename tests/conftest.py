import json
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def temp_db(monkeypatch, tmp_path):
    import db

    db_path = tmp_path / "test.db"
    monkeypatch.setattr(db, "DB_PATH", str(db_path))

    # Reset the connection pool for each test
    db._pool = db.SQLiteConnectionPool(str(db_path), max_connections=10)
    db.init()
    yield str(db_path)
    db._pool.close_all()


@pytest.fixture
def local_store(tmp_path):
    from offline.local_store import LocalStore

    store = LocalStore(str(tmp_path / "client.db"))
    yield store
    store.close()


class FakeTransport:
    """Stands in for :class:`offline.transport.HttpTransport`.

    ``handler`` receives each resolved request and returns a ClientResponse
    or raises NetworkUnavailable. Every request is recorded in ``sent``.
    """

    def __init__(self, handler: Optional[Callable] = None, base_url: str = "http://study.test") -> None:
        from offline.transport import HttpTransport

        self._real = HttpTransport(base_url)
        self.base_url = self._real.base_url
        self.handler = handler
        self.online = True
        self.token: Optional[str] = "token-1"
        self.sent: List = []

    def resolve(self, request):
        return self._real.resolve(request)

    def is_same_origin(self, url: str) -> bool:
        return self._real.is_same_origin(url)

    def set_token(self, token):
        self.token = token

    def fetch(self, request):
        from offline.errors import NetworkUnavailable

        request = self.resolve(request)
        self.sent.append(request)
        if not self.online:
            raise NetworkUnavailable("offline")
        return self.handler(request)

    def posted_payloads(self) -> List[Dict]:
        return [json.loads(req.body) for req in self.sent if req.method == "POST"]


@pytest.fixture
def fake_transport():
    from offline.transport import ClientResponse

    def default_handler(request):
        return ClientResponse.json_response({"message": "ok"})

    return FakeTransport(default_handler)
