from fastapi.testclient import TestClient

from app.main import app
from app.stores.memory import MemoryStore


def test_health():
    app.state.services = None
    with TestClient(app) as c:
        r = c.get("/health")
        assert r.status_code == 200
        assert r.json() == {"status": "ok"}
        # STORE_BACKEND=memory in tests; startup wires services without MongoDB
        assert isinstance(app.state.services.store, MemoryStore)
    app.state.services = None
