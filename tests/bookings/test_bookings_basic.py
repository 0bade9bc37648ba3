from datetime import datetime, timedelta

import httpx
import pytest
from fastapi.testclient import TestClient

from bookings_service import hoardings_client
from bookings_service.database import Base, engine
from bookings_service.main import app
from common.timeutils import utcnow
from helpers import FakeResponse, auth_headers

client = TestClient(app)

NEXT_YEAR = utcnow().year + 1
USER = auth_headers(1, "user")
OTHER_USER = auth_headers(2, "user")
ADMIN = auth_headers(99, "admin")


def iso(month: int, dom: int) -> str:
    return datetime(NEXT_YEAR, month, dom).isoformat()


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    hoardings_client.hoardings_circuit_breaker.reset()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def hoardings(monkeypatch):
    """Fake hoardings service reached through httpx.get / httpx.put."""
    store = {
        1: {"id": 1, "location": "MG Road", "price": 1000.0, "status": "available",
            "size": {"width": 10, "height": 5}, "created_by": 99},
        2: {"id": 2, "location": "Station Square", "price": 400.0, "status": "maintenance",
            "size": {"width": 6, "height": 3}, "created_by": 99},
    }
    puts = []

    def fake_get(url, headers=None, timeout=None, **kwargs):
        assert headers["Authorization"].startswith("Bearer ")
        hoarding_id = int(url.rstrip("/").rsplit("/", 1)[-1])
        if hoarding_id not in store:
            return FakeResponse(404, {"message": "Hoarding not found"})
        return FakeResponse(200, dict(store[hoarding_id]))

    def fake_put(url, json=None, headers=None, timeout=None, **kwargs):
        assert url.endswith("/status")
        hoarding_id = int(url.rsplit("/", 2)[-2])
        if hoarding_id not in store:
            return FakeResponse(404, {"message": "Hoarding not found"})
        store[hoarding_id]["status"] = json["status"]
        puts.append((hoarding_id, json["status"]))
        return FakeResponse(200, dict(store[hoarding_id]))

    monkeypatch.setattr(httpx, "get", fake_get)
    monkeypatch.setattr(httpx, "put", fake_put)
    return {"store": store, "puts": puts}


def create(hoarding_id=1, start=(3, 10), end=(3, 13), headers=USER):
    body = {"hoarding_id": hoarding_id, "start_date": iso(*start), "end_date": iso(*end)}
    return client.post("/api/v1/bookings", json=body, headers=headers)


def test_health_check():
    res = client.get("/")
    assert res.status_code == 200
    assert res.json() == {"service": "bookings", "status": "running"}


def test_create_booking_requires_token(hoardings):
    res = client.post(
        "/api/v1/bookings",
        json={"hoarding_id": 1, "start_date": iso(3, 10), "end_date": iso(3, 13)},
    )
    assert res.status_code == 401


def test_user_can_request_booking(hoardings):
    res = create()
    assert res.status_code == 201
    data = res.json()
    assert data["user_id"] == 1
    assert data["hoarding_id"] == 1
    assert data["status"] == "pending"
    assert data["payment_status"] == "pending"
    assert data["total_amount"] == 3000
    assert data["hoarding"]["location"] == "MG Road"


def test_end_to_end_overlap_example(hoardings):
    assert create(start=(3, 10), end=(3, 13)).status_code == 201

    res_b = create(start=(3, 12), end=(3, 15), headers=OTHER_USER)
    assert res_b.status_code == 400
    assert "already booked" in res_b.json()["message"].lower()

    res_c = create(start=(3, 13), end=(3, 15), headers=OTHER_USER)
    assert res_c.status_code == 201
    assert res_c.json()["total_amount"] == 2000


def test_unknown_hoarding_returns_404(hoardings):
    res = create(hoarding_id=42)
    assert res.status_code == 404
    assert res.json()["message"] == "Hoarding not found"


def test_hoarding_in_maintenance_is_not_available(hoardings):
    res = create(hoarding_id=2)
    assert res.status_code == 400
    assert res.json()["message"] == "Hoarding is not available"


def test_end_before_start_is_a_validation_error(hoardings):
    res = create(start=(3, 13), end=(3, 10))
    assert res.status_code == 400
    assert res.json()["message"] == "End date must be after start date"


def test_past_start_is_a_validation_error(hoardings):
    start = utcnow() - timedelta(days=1)
    body = {
        "hoarding_id": 1,
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=3)).isoformat(),
    }
    res = client.post("/api/v1/bookings", json=body, headers=USER)
    assert res.status_code == 400
    assert res.json()["message"] == "Start date must be in the future"


def test_malformed_body_is_reported_as_400(hoardings):
    res = client.post("/api/v1/bookings", json={"hoarding_id": 1}, headers=USER)
    assert res.status_code == 400
    body = res.json()
    assert body["message"] == "Validation Error"
    assert body["errors"]


def test_timezone_aware_dates_are_stored_in_utc(hoardings):
    body = {
        "hoarding_id": 1,
        "start_date": f"{NEXT_YEAR}-03-10T05:30:00+05:30",
        "end_date": f"{NEXT_YEAR}-03-11T05:30:00+05:30",
    }
    res = client.post("/api/v1/bookings", json=body, headers=USER)
    assert res.status_code == 201
    assert res.json()["start_date"].startswith(f"{NEXT_YEAR}-03-10T00:00:00")


def test_listing_is_scoped_to_the_caller_unless_admin(hoardings):
    create(start=(3, 10), end=(3, 13), headers=USER)
    create(start=(4, 10), end=(4, 13), headers=OTHER_USER)

    mine = client.get("/api/v1/bookings", headers=USER).json()
    assert [b["user_id"] for b in mine] == [1]

    everything = client.get("/api/v1/bookings", headers=ADMIN).json()
    assert len(everything) == 2
    # newest first
    assert everything[0]["user_id"] == 2

    filtered = client.get("/api/v1/bookings", params={"user_id": 1}, headers=ADMIN).json()
    assert [b["user_id"] for b in filtered] == [1]


def test_my_bookings_newest_first(hoardings):
    first = create(start=(3, 10), end=(3, 13)).json()
    second = create(start=(5, 1), end=(5, 3)).json()

    res = client.get("/api/v1/bookings/my-bookings", headers=USER)
    assert res.status_code == 200
    assert [b["id"] for b in res.json()] == [second["id"], first["id"]]


def test_get_booking_owner_or_admin_only(hoardings):
    booking = create().json()

    assert client.get(f"/api/v1/bookings/{booking['id']}", headers=USER).status_code == 200
    assert client.get(f"/api/v1/bookings/{booking['id']}", headers=OTHER_USER).status_code == 403

    res_admin = client.get(f"/api/v1/bookings/{booking['id']}", headers=ADMIN)
    assert res_admin.status_code == 200
    assert res_admin.json()["hoarding"]["id"] == 1

    assert client.get("/api/v1/bookings/9999", headers=ADMIN).status_code == 404


def test_only_admin_can_change_status(hoardings):
    booking = create().json()
    res = client.put(
        f"/api/v1/bookings/{booking['id']}/status",
        json={"status": "approved"},
        headers=USER,
    )
    assert res.status_code == 403
    assert hoardings["puts"] == []


def test_approving_flags_hoarding_booked(hoardings):
    booking = create().json()
    res = client.put(
        f"/api/v1/bookings/{booking['id']}/status",
        json={"status": "approved"},
        headers=ADMIN,
    )
    assert res.status_code == 200
    assert res.json()["status"] == "approved"
    assert hoardings["puts"] == [(1, "booked")]

    # the hoarding is now flagged booked, so even disjoint dates are refused
    res_later = create(start=(9, 1), end=(9, 5), headers=OTHER_USER)
    assert res_later.status_code == 400
    assert res_later.json()["message"] == "Hoarding is not available"


def test_rejecting_leaves_hoarding_alone(hoardings):
    booking = create().json()
    res = client.put(
        f"/api/v1/bookings/{booking['id']}/status",
        json={"status": "rejected"},
        headers=ADMIN,
    )
    assert res.status_code == 200
    assert res.json()["status"] == "rejected"
    assert hoardings["puts"] == []
    assert hoardings["store"][1]["status"] == "available"


def test_pending_is_not_an_admin_decision(hoardings):
    booking = create().json()
    res = client.put(
        f"/api/v1/bookings/{booking['id']}/status",
        json={"status": "pending"},
        headers=ADMIN,
    )
    assert res.status_code == 400


def test_status_change_when_hoardings_service_is_down(hoardings, monkeypatch):
    booking = create().json()

    def failing_put(*args, **kwargs):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(httpx, "put", failing_put)
    res = client.put(
        f"/api/v1/bookings/{booking['id']}/status",
        json={"status": "approved"},
        headers=ADMIN,
    )
    assert res.status_code == 502

    res_get = client.get(f"/api/v1/bookings/{booking['id']}", headers=USER)
    assert res_get.json()["status"] == "pending"


def test_approving_booking_of_deleted_hoarding_is_not_found(hoardings):
    booking = create().json()
    del hoardings["store"][1]

    for _ in range(4):
        res = client.put(
            f"/api/v1/bookings/{booking['id']}/status",
            json={"status": "approved"},
            headers=ADMIN,
        )
        assert res.status_code == 404
        assert res.json()["message"] == "Hoarding not found"

    assert hoardings_client.hoardings_circuit_breaker.state == "closed"
    res_get = client.get(f"/api/v1/bookings/{booking['id']}", headers=USER)
    assert res_get.json()["status"] == "pending"


def test_circuit_opens_after_repeated_failures(hoardings, monkeypatch):
    def failing_get(*args, **kwargs):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(httpx, "get", failing_get)
    for _ in range(3):
        assert create().status_code == 502

    res = create()
    assert res.status_code == 503


def test_availability_endpoint_reflects_blocking_bookings(hoardings):
    booking = create(start=(3, 10), end=(3, 13)).json()
    params = {"hoarding_id": 1, "start_date": iso(3, 12), "end_date": iso(3, 14)}

    res = client.get("/api/v1/bookings/availability", params=params, headers=OTHER_USER)
    assert res.status_code == 200
    assert res.json()["available"] is False

    client.put(
        f"/api/v1/bookings/{booking['id']}/status",
        json={"status": "rejected"},
        headers=ADMIN,
    )
    res = client.get("/api/v1/bookings/availability", params=params, headers=OTHER_USER)
    assert res.json()["available"] is True


def test_owner_can_record_payment(hoardings):
    booking = create().json()
    res = client.put(
        f"/api/v1/bookings/{booking['id']}/payment",
        json={"payment_status": "paid", "transaction_id": "txn_123", "payment_method": "card"},
        headers=USER,
    )
    assert res.status_code == 200
    data = res.json()
    assert data["payment_status"] == "paid"
    assert data["transaction_id"] == "txn_123"
    assert data["status"] == "pending"

    res_other = client.put(
        f"/api/v1/bookings/{booking['id']}/payment",
        json={"payment_status": "paid"},
        headers=OTHER_USER,
    )
    assert res_other.status_code == 403


def test_delete_booking_owner_or_admin(hoardings):
    booking = create().json()

    assert client.delete(f"/api/v1/bookings/{booking['id']}", headers=OTHER_USER).status_code == 403

    res = client.delete(f"/api/v1/bookings/{booking['id']}", headers=USER)
    assert res.status_code == 200
    assert res.json() == {"message": "Booking removed"}
    assert client.get(f"/api/v1/bookings/{booking['id']}", headers=USER).status_code == 404


def test_delete_approved_booking_keeps_hoarding_booked(hoardings):
    booking = create().json()
    client.put(
        f"/api/v1/bookings/{booking['id']}/status",
        json={"status": "approved"},
        headers=ADMIN,
    )

    res = client.delete(f"/api/v1/bookings/{booking['id']}", headers=ADMIN)
    assert res.status_code == 200
    assert hoardings["store"][1]["status"] == "booked"
