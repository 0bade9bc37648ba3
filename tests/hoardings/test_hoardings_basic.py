from datetime import datetime, timedelta

import httpx
import pytest
import redis
from fastapi.testclient import TestClient

from common import cache
from common.rate_limiter import api_limiter
from hoardings_service import main as hoardings_main
from hoardings_service.database import Base, engine
from hoardings_service.main import app
from helpers import FakeResponse, auth_headers

client = TestClient(app)

ADMIN = auth_headers(1, "admin")
USER = auth_headers(2, "user")
SERVICE = auth_headers(0, "service_account")


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    hoardings_main.bookings_circuit_breaker.reset()
    yield
    Base.metadata.drop_all(bind=engine)


def hoarding_payload(**overrides):
    payload = {
        "location": "  MG Road, Bengaluru  ",
        "size": {"width": 12, "height": 6},
        "price": 1500,
        "description": "Facing the metro exit",
    }
    payload.update(overrides)
    return payload


def create_hoarding(**overrides):
    res = client.post("/api/v1/hoardings", json=hoarding_payload(**overrides), headers=ADMIN)
    assert res.status_code == 201, res.text
    return res.json()


def test_create_hoarding_requires_auth():
    res = client.post("/api/v1/hoardings", json=hoarding_payload())
    assert res.status_code == 401


def test_regular_user_cannot_create_hoarding():
    res = client.post("/api/v1/hoardings", json=hoarding_payload(), headers=USER)
    assert res.status_code == 403


def test_admin_can_create_hoarding():
    body = create_hoarding()
    assert body["location"] == "MG Road, Bengaluru"
    assert body["size"] == {"width": 12, "height": 6}
    assert body["price"] == 1500
    assert body["status"] == "available"
    assert body["created_by"] == 1


@pytest.mark.parametrize(
    "overrides",
    [
        {"price": -1},
        {"size": {"width": 0.5, "height": 3}},
        {"size": {"width": 3}},
        {"location": ""},
        {"status": "demolished"},
    ],
)
def test_invalid_hoarding_is_rejected(overrides):
    res = client.post("/api/v1/hoardings", json=hoarding_payload(**overrides), headers=ADMIN)
    assert res.status_code == 400
    assert res.json()["message"] == "Validation Error"


def test_listing_is_public_and_filterable():
    create_hoarding(location="MG Road", price=1500)
    create_hoarding(location="Station Square", price=400, status="maintenance")

    res = client.get("/api/v1/hoardings")
    assert res.status_code == 200
    assert len(res.json()) == 2

    cheap = client.get("/api/v1/hoardings", params={"max_price": 500}).json()
    assert [h["location"] for h in cheap] == ["Station Square"]

    available = client.get("/api/v1/hoardings", params={"status": "available"}).json()
    assert [h["location"] for h in available] == ["MG Road"]

    by_location = client.get("/api/v1/hoardings", params={"location": "mg"}).json()
    assert [h["location"] for h in by_location] == ["MG Road"]


def test_get_hoarding_is_public():
    created = create_hoarding()
    res = client.get(f"/api/v1/hoardings/{created['id']}")
    assert res.status_code == 200
    assert res.json()["id"] == created["id"]


def test_get_nonexistent_hoarding_returns_404():
    res = client.get("/api/v1/hoardings/9999")
    assert res.status_code == 404
    body = res.json()
    assert body["message"] == "Hoarding not found"
    assert body["service"] == "hoardings"


def test_admin_can_update_hoarding_partially():
    created = create_hoarding()
    res = client.put(
        f"/api/v1/hoardings/{created['id']}",
        json={"price": 1800, "status": "maintenance"},
        headers=ADMIN,
    )
    assert res.status_code == 200
    body = res.json()
    assert body["price"] == 1800
    assert body["status"] == "maintenance"
    assert body["location"] == "MG Road, Bengaluru"


def test_price_can_be_set_to_zero():
    created = create_hoarding()
    res = client.put(f"/api/v1/hoardings/{created['id']}", json={"price": 0}, headers=ADMIN)
    assert res.status_code == 200
    assert res.json()["price"] == 0


def test_regular_user_cannot_update_or_delete():
    created = create_hoarding()
    assert client.put(f"/api/v1/hoardings/{created['id']}", json={"price": 1}, headers=USER).status_code == 403
    assert client.delete(f"/api/v1/hoardings/{created['id']}", headers=USER).status_code == 403


def test_service_account_can_set_status_but_user_cannot():
    created = create_hoarding()
    url = f"/api/v1/hoardings/{created['id']}/status"

    assert client.put(url, json={"status": "booked"}, headers=USER).status_code == 403

    res = client.put(url, json={"status": "booked"}, headers=SERVICE)
    assert res.status_code == 200
    assert res.json()["status"] == "booked"


def test_admin_can_delete_hoarding():
    created = create_hoarding()
    res = client.delete(f"/api/v1/hoardings/{created['id']}", headers=ADMIN)
    assert res.status_code == 200
    assert res.json() == {"message": "Hoarding removed"}
    assert client.get(f"/api/v1/hoardings/{created['id']}").status_code == 404


def test_availability_without_range_reports_flag():
    created = create_hoarding()
    res = client.get(f"/api/v1/hoardings/{created['id']}/availability")
    assert res.status_code == 200
    assert res.json()["status"] == "available"

    client.put(f"/api/v1/hoardings/{created['id']}", json={"status": "maintenance"}, headers=ADMIN)
    res = client.get(f"/api/v1/hoardings/{created['id']}/availability")
    assert res.json()["status"] == "maintenance"


def test_availability_for_range_asks_bookings_service(monkeypatch):
    created = create_hoarding(status="booked")
    calls = []

    def fake_httpx_get(url, params=None, headers=None, timeout=None):
        assert "/bookings/availability" in url
        assert params["hoarding_id"] == created["id"]
        assert headers["Authorization"].startswith("Bearer ")
        calls.append(params)
        return FakeResponse(200, {"hoarding_id": created["id"], "available": True})

    monkeypatch.setattr(httpx, "get", fake_httpx_get)

    start = datetime.utcnow() + timedelta(days=10)
    res = client.get(
        f"/api/v1/hoardings/{created['id']}/availability",
        params={
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(days=3)).isoformat(),
        },
    )
    assert res.status_code == 200
    # derived from bookings, not from the stored flag
    assert res.json()["status"] == "available"
    assert len(calls) == 1


def test_availability_for_range_reports_booked(monkeypatch):
    created = create_hoarding()

    def fake_httpx_get(url, params=None, headers=None, timeout=None):
        return FakeResponse(200, {"hoarding_id": created["id"], "available": False})

    monkeypatch.setattr(httpx, "get", fake_httpx_get)

    start = datetime.utcnow() + timedelta(days=10)
    res = client.get(
        f"/api/v1/hoardings/{created['id']}/availability",
        params={
            "start_date": start.isoformat(),
            "end_date": (start + timedelta(days=1)).isoformat(),
        },
    )
    assert res.json()["status"] == "booked"


def test_availability_rejects_inverted_range():
    created = create_hoarding()
    start = datetime.utcnow() + timedelta(days=10)
    res = client.get(
        f"/api/v1/hoardings/{created['id']}/availability",
        params={
            "start_date": start.isoformat(),
            "end_date": (start - timedelta(days=1)).isoformat(),
        },
    )
    assert res.status_code == 400


def test_availability_when_bookings_service_down(monkeypatch):
    created = create_hoarding()

    def failing_get(*args, **kwargs):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(httpx, "get", failing_get)

    start = datetime.utcnow() + timedelta(days=10)
    params = {
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=1)).isoformat(),
    }
    url = f"/api/v1/hoardings/{created['id']}/availability"
    for _ in range(3):
        assert client.get(url, params=params).status_code == 502
    assert client.get(url, params=params).status_code == 503


@pytest.fixture
def live_rate_limit(monkeypatch):
    monkeypatch.delenv("TESTING")
    monkeypatch.setattr(api_limiter, "max_requests", 3)
    api_limiter.reset()
    yield
    api_limiter.reset()


def test_api_rate_limit_applies_to_clients(live_rate_limit):
    for _ in range(3):
        assert client.get("/api/v1/hoardings").status_code == 200

    res = client.get("/api/v1/hoardings")
    assert res.status_code == 429
    assert "Too many requests" in res.json()["message"]


def test_service_calls_are_not_rate_limited(monkeypatch):
    created = create_hoarding()
    monkeypatch.delenv("TESTING")
    monkeypatch.setattr(api_limiter, "max_requests", 3)
    api_limiter.reset()

    try:
        for _ in range(10):
            assert client.get(f"/api/v1/hoardings/{created['id']}", headers=SERVICE).status_code == 200
        res = client.put(
            f"/api/v1/hoardings/{created['id']}/status",
            json={"status": "booked"},
            headers=SERVICE,
        )
        assert res.status_code == 200

        # an invalid token does not get the exemption
        forged = {"Authorization": "Bearer not-a-token"}
        for _ in range(3):
            client.get("/api/v1/hoardings", headers=forged)
        assert client.get("/api/v1/hoardings", headers=forged).status_code == 429
    finally:
        api_limiter.reset()


def test_redis_going_away_falls_back_to_database(monkeypatch):
    created = create_hoarding()
    dead = redis.from_url("redis://127.0.0.1:1/0", decode_responses=True, socket_connect_timeout=0.5)
    monkeypatch.setattr(cache, "_redis_client", dead)

    res = client.get("/api/v1/hoardings")
    assert res.status_code == 200
    assert [h["id"] for h in res.json()] == [created["id"]]
    assert cache._redis_client is None

    monkeypatch.setattr(cache, "_redis_client", dead)
    res = client.put(f"/api/v1/hoardings/{created['id']}", json={"price": 900}, headers=ADMIN)
    assert res.status_code == 200
    assert client.get(f"/api/v1/hoardings/{created['id']}").json()["price"] == 900
