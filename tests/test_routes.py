from fastapi.testclient import TestClient

from trivia_server.config import Settings
from trivia_server.main import create_api
from trivia_server.models import Room
from trivia_server.room_store import RoomStore


def make_client(store=None):
    settings = Settings(cors_origins=["http://localhost:3000", "https://quiz.example.com"])
    return TestClient(create_api(settings, store or RoomStore()))


def test_root_reports_room_count():
    store = RoomStore()
    store.add(Room(code="ABC123", admin_id="s1"))
    response = make_client(store).get("/")

    assert response.status_code == 200
    assert response.json() == {"status": "Quiz Game Backend Running", "rooms": 1}


def test_cors_health_echoes_origin():
    response = make_client().get("/api/health/cors", headers={"Origin": "https://quiz.example.com"})

    assert response.status_code == 200
    assert response.headers["cache-control"] == "no-store"
    assert response.headers["access-control-allow-origin"] == "https://quiz.example.com"
    body = response.json()
    assert body["ok"] is True
    assert body["origin"] == "https://quiz.example.com"
    assert body["allowlist"] == ["http://localhost:3000", "https://quiz.example.com"]


def test_unlisted_origin_gets_no_cors_header():
    response = make_client().get("/api/health/cors", headers={"Origin": "https://evil.example.com"})
    assert "access-control-allow-origin" not in response.headers
