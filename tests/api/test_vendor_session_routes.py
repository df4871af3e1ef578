from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from fastapi.testclient import TestClient

from dealvault.api.routes import route_helpers
from dealvault.api.routes import vendor_sessions as vendor_session_routes
from dealvault.core.results import FailureCode, Ok, fail
from dealvault.enforcement.types import IssuedVendorSession
from dealvault.identity.types import VendorContext
from dealvault.main import app

VENDOR = VendorContext(id=uuid4(), email="vendor@example.com", business_id=uuid4())


def _as_vendor(monkeypatch, fake_session_factory) -> None:
    async def fake_resolve_vendor(request):  # noqa: ARG001
        return VENDOR

    monkeypatch.setattr(route_helpers, "resolve_vendor", fake_resolve_vendor)
    monkeypatch.setattr(vendor_session_routes, "SessionLocal", fake_session_factory)


def test_open_vendor_session_returns_token_once(monkeypatch, fake_session_factory) -> None:
    _as_vendor(monkeypatch, fake_session_factory)
    issued = IssuedVendorSession(
        token="a" * 64,
        session_id=uuid4(),
        business_ids=(VENDOR.business_id,),
        location_ids=("front-desk",),
        expires_at=datetime(2026, 9, 1, 20, 0, tzinfo=timezone.utc),
    )
    calls: list[dict[str, object]] = []

    async def fake_create(session, **kwargs):  # noqa: ARG001
        calls.append(kwargs)
        return Ok(issued)

    monkeypatch.setattr(vendor_session_routes, "create_vendor_session", fake_create)

    response = TestClient(app).post(
        "/vendor/sessions",
        json={"locationIds": ["front-desk"], "durationHours": 8},
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["token"] == "a" * 64
    assert payload["businessIds"] == [str(VENDOR.business_id)]
    assert calls[0]["duration_hours"] == 8
    assert calls[0]["vendor"] == VENDOR


def test_open_vendor_session_rejects_long_duration(monkeypatch, fake_session_factory) -> None:
    _as_vendor(monkeypatch, fake_session_factory)

    response = TestClient(app).post("/vendor/sessions", json={"durationHours": 24})

    assert response.status_code == 422


def test_open_vendor_session_requires_active_subscription(monkeypatch, fake_session_factory) -> None:
    _as_vendor(monkeypatch, fake_session_factory)

    async def fake_create(session, **kwargs):  # noqa: ARG001
        return fail(FailureCode.SUBSCRIPTION_INACTIVE, "business subscription is not active")

    monkeypatch.setattr(vendor_session_routes, "create_vendor_session", fake_create)

    response = TestClient(app).post("/vendor/sessions", json={})

    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "SUBSCRIPTION_INACTIVE"


def test_close_current_session(monkeypatch, fake_session_factory) -> None:
    monkeypatch.setattr(vendor_session_routes, "SessionLocal", fake_session_factory)
    seen: list[str | None] = []

    async def fake_revoke(session, token):  # noqa: ARG001
        seen.append(token)
        return token == "live-token"

    monkeypatch.setattr(vendor_session_routes, "revoke_vendor_session", fake_revoke)
    client = TestClient(app)

    closed = client.delete("/vendor/sessions/current", headers={"X-Vendor-Session": "live-token"})
    unknown = client.delete("/vendor/sessions/current", headers={"X-Vendor-Session": "stale"})

    assert closed.status_code == 204
    assert unknown.status_code == 401
    assert seen == ["live-token", "stale"]


def test_close_all_sessions_for_vendor(monkeypatch, fake_session_factory) -> None:
    _as_vendor(monkeypatch, fake_session_factory)

    async def fake_revoke_all(session, vendor_user_id):  # noqa: ARG001
        assert vendor_user_id == VENDOR.id
        return 3

    monkeypatch.setattr(vendor_session_routes, "revoke_all_vendor_sessions", fake_revoke_all)

    response = TestClient(app).delete("/vendor/sessions")

    assert response.status_code == 200
    assert response.json() == {"revoked": 3}
