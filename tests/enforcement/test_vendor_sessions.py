from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from dealvault.core.results import FailureCode, Ok, fail
from dealvault.enforcement import vendor_sessions
from dealvault.identity.types import VendorContext

SESSION = SimpleNamespace()
NOW = datetime(2026, 6, 1, 8, 0, tzinfo=timezone.utc)


def _vendor() -> VendorContext:
    return VendorContext(id=uuid4(), email="vendor@example.com", business_id=uuid4())


def _open_gates(monkeypatch) -> None:
    async def business_gate(session, business_id):  # noqa: ARG001
        return Ok(business_id)

    async def subscription_gate(session, business_id, *, now_utc):  # noqa: ARG001
        return Ok(business_id)

    monkeypatch.setattr(vendor_sessions, "require_active_business", business_gate)
    monkeypatch.setattr(vendor_sessions, "require_active_subscription", subscription_gate)


def _capture_create(monkeypatch) -> list[dict[str, object]]:
    created: list[dict[str, object]] = []

    async def fake_create(session, **kwargs):  # noqa: ARG001
        created.append(kwargs)
        return SimpleNamespace(id=uuid4(), **kwargs)

    monkeypatch.setattr(vendor_sessions.VendorSessionsRepo, "create", fake_create)
    return created


def test_session_token_digest_is_peppered_hmac() -> None:
    token = vendor_sessions.generate_session_token()
    assert len(token) == 64
    digest = vendor_sessions.hash_session_token(token, pepper="pepper-a")
    assert digest == vendor_sessions.hash_session_token(token, pepper="pepper-a")
    assert digest != vendor_sessions.hash_session_token(token, pepper="pepper-b")
    assert token not in digest


@pytest.mark.asyncio
async def test_create_session_stores_only_digest(monkeypatch) -> None:
    _open_gates(monkeypatch)
    created = _capture_create(monkeypatch)
    vendor = _vendor()

    result = await vendor_sessions.create_vendor_session(
        SESSION,
        vendor=vendor,
        location_ids=[" front-desk ", "front-desk", "patio"],
        duration_hours=4,
        now_utc=NOW,
    )

    assert result.ok is True
    issued = result.value
    assert issued.business_ids == (vendor.business_id,)
    assert issued.location_ids == ("front-desk", "patio")
    assert issued.expires_at == NOW + timedelta(hours=4)
    assert created[0]["token_digest"] == vendor_sessions.hash_session_token(issued.token)
    assert issued.token not in created[0].values()


@pytest.mark.asyncio
@pytest.mark.parametrize("hours", [0, 13])
async def test_session_duration_is_bounded(monkeypatch, hours: int) -> None:
    _open_gates(monkeypatch)
    result = await vendor_sessions.create_vendor_session(SESSION, vendor=_vendor(), duration_hours=hours, now_utc=NOW)
    assert result.code is FailureCode.INVALID_INPUT


@pytest.mark.asyncio
async def test_session_cannot_cover_foreign_business(monkeypatch) -> None:
    _open_gates(monkeypatch)
    vendor = _vendor()
    result = await vendor_sessions.create_vendor_session(
        SESSION,
        vendor=vendor,
        business_ids=[vendor.business_id, uuid4()],
        now_utc=NOW,
    )
    assert result.code is FailureCode.VENDOR_NOT_OWNER


@pytest.mark.asyncio
async def test_session_requires_active_subscription(monkeypatch) -> None:
    _open_gates(monkeypatch)

    async def closed_subscription(session, business_id, *, now_utc):  # noqa: ARG001
        return fail(FailureCode.SUBSCRIPTION_INACTIVE, "inactive")

    monkeypatch.setattr(vendor_sessions, "require_active_subscription", closed_subscription)
    result = await vendor_sessions.create_vendor_session(SESSION, vendor=_vendor(), now_utc=NOW)
    assert result.code is FailureCode.SUBSCRIPTION_INACTIVE


def _session_row(*, expires_at: datetime) -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid4(),
        vendor_user_id=uuid4(),
        business_ids=[uuid4()],
        location_ids=["front-desk"],
        expires_at=expires_at,
    )


@pytest.mark.asyncio
async def test_validate_session_touches_activity(monkeypatch) -> None:
    row = _session_row(expires_at=NOW + timedelta(hours=2))
    touched: list[object] = []

    async def get_active_by_digest(session, digest):  # noqa: ARG001
        return row

    async def get_identity(session, identity_id):  # noqa: ARG001
        return SimpleNamespace(id=identity_id, role="VENDOR", status="ACTIVE")

    async def touch_activity(session, session_id, *, now_utc):  # noqa: ARG001
        touched.append(session_id)
        return 1

    monkeypatch.setattr(vendor_sessions.VendorSessionsRepo, "get_active_by_digest", get_active_by_digest)
    monkeypatch.setattr(vendor_sessions.VendorSessionsRepo, "touch_activity", touch_activity)
    monkeypatch.setattr(vendor_sessions.IdentitiesRepo, "get_by_id", get_identity)

    context = await vendor_sessions.validate_vendor_session(SESSION, "raw-token", now_utc=NOW)

    assert context is not None
    assert context.location_ids == ("front-desk",)
    assert touched == [row.id]


@pytest.mark.asyncio
async def test_expired_session_is_deactivated(monkeypatch) -> None:
    row = _session_row(expires_at=NOW)
    deactivated: list[object] = []

    async def get_active_by_digest(session, digest):  # noqa: ARG001
        return row

    async def deactivate_by_id(session, session_id):  # noqa: ARG001
        deactivated.append(session_id)
        return 1

    monkeypatch.setattr(vendor_sessions.VendorSessionsRepo, "get_active_by_digest", get_active_by_digest)
    monkeypatch.setattr(vendor_sessions.VendorSessionsRepo, "deactivate_by_id", deactivate_by_id)

    assert await vendor_sessions.validate_vendor_session(SESSION, "raw-token", now_utc=NOW) is None
    assert deactivated == [row.id]


@pytest.mark.asyncio
async def test_session_of_suspended_vendor_is_invalid(monkeypatch) -> None:
    row = _session_row(expires_at=NOW + timedelta(hours=1))

    async def get_active_by_digest(session, digest):  # noqa: ARG001
        return row

    async def get_identity(session, identity_id):  # noqa: ARG001
        return SimpleNamespace(id=identity_id, role="VENDOR", status="SUSPENDED")

    monkeypatch.setattr(vendor_sessions.VendorSessionsRepo, "get_active_by_digest", get_active_by_digest)
    monkeypatch.setattr(vendor_sessions.IdentitiesRepo, "get_by_id", get_identity)

    assert await vendor_sessions.validate_vendor_session(SESSION, "raw-token", now_utc=NOW) is None


@pytest.mark.asyncio
async def test_missing_token_is_invalid() -> None:
    assert await vendor_sessions.validate_vendor_session(SESSION, None, now_utc=NOW) is None
    assert await vendor_sessions.revoke_vendor_session(SESSION, None) is False
