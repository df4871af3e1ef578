from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from dealvault.api.routes import identity as identity_routes
from dealvault.api.routes import route_helpers
from dealvault.core.results import FailureCode, Ok, fail
from dealvault.identity.types import IdentityContext, IdentityRole, IdentityStatus, VendorBinding
from dealvault.main import app


def _identity(role: IdentityRole) -> IdentityContext:
    return IdentityContext(id=uuid4(), email="who@example.com", role=role, status=IdentityStatus.ACTIVE)


def test_me_returns_vendor_business(monkeypatch, fake_session_factory) -> None:
    vendor = _identity(IdentityRole.VENDOR)
    business_id = uuid4()

    async def fake_resolve_identity(request):  # noqa: ARG001
        return vendor

    async def fake_ownership(session, user_id):  # noqa: ARG001
        return SimpleNamespace(business_id=business_id)

    monkeypatch.setattr(route_helpers, "resolve_identity", fake_resolve_identity)
    monkeypatch.setattr(identity_routes, "SessionLocal", fake_session_factory)
    monkeypatch.setattr(identity_routes.IdentitiesRepo, "get_ownership_by_user", fake_ownership)

    response = TestClient(app).get("/identity/me", headers={"Authorization": "Bearer t"})

    assert response.status_code == 200
    assert response.json() == {
        "id": str(vendor.id),
        "email": vendor.email,
        "role": "VENDOR",
        "status": "ACTIVE",
        "businessId": str(business_id),
    }


def test_me_for_user_has_no_business(monkeypatch) -> None:
    user = _identity(IdentityRole.USER)

    async def fake_resolve_identity(request):  # noqa: ARG001
        return user

    monkeypatch.setattr(route_helpers, "resolve_identity", fake_resolve_identity)

    response = TestClient(app).get("/identity/me")

    assert response.json()["businessId"] is None


def test_bind_vendor_as_admin(monkeypatch) -> None:
    admin = _identity(IdentityRole.ADMIN)
    user_id, business_id = uuid4(), uuid4()

    async def fake_resolve_role(request, role):  # noqa: ARG001
        assert role is IdentityRole.ADMIN
        return admin

    async def fake_bind(*, caller, user_id, business_id):
        assert caller == admin
        return Ok(VendorBinding(user_id=user_id, business_id=business_id))

    monkeypatch.setattr(route_helpers, "resolve_role", fake_resolve_role)
    monkeypatch.setattr(identity_routes, "bind_vendor_to_business", fake_bind)

    response = TestClient(app).post(
        "/identity/bind-vendor",
        json={"userId": str(user_id), "businessId": str(business_id)},
    )

    assert response.status_code == 201
    assert response.json() == {"userId": str(user_id), "businessId": str(business_id)}


def test_bind_vendor_conflict(monkeypatch) -> None:
    async def fake_resolve_role(request, role):  # noqa: ARG001
        return _identity(IdentityRole.ADMIN)

    async def fake_bind(**kwargs):  # noqa: ARG001
        return fail(FailureCode.ALREADY_BOUND, "business is already bound to a vendor")

    monkeypatch.setattr(route_helpers, "resolve_role", fake_resolve_role)
    monkeypatch.setattr(identity_routes, "bind_vendor_to_business", fake_bind)

    response = TestClient(app).post(
        "/identity/bind-vendor",
        json={"userId": str(uuid4()), "businessId": str(uuid4())},
    )

    assert response.status_code == 409


def test_bind_vendor_forbidden_for_non_admin(monkeypatch) -> None:
    async def fake_resolve_role(request, role):  # noqa: ARG001
        route_helpers.raise_for_failure(fail(FailureCode.FORBIDDEN, "ADMIN role required"))

    monkeypatch.setattr(route_helpers, "resolve_role", fake_resolve_role)

    response = TestClient(app).post(
        "/identity/bind-vendor",
        json={"userId": str(uuid4()), "businessId": str(uuid4())},
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_resolve_identity_opens_session_and_raises_on_failure(monkeypatch, fake_session_factory) -> None:
    async def fake_authenticate(session, credential):  # noqa: ARG001
        assert credential == "abc"
        return fail(FailureCode.SUSPENDED, "identity is suspended")

    monkeypatch.setattr(route_helpers, "SessionLocal", fake_session_factory)
    monkeypatch.setattr(route_helpers, "authenticate_identity", fake_authenticate)
    request = SimpleNamespace(
        headers={"Authorization": "Bearer abc"},
        url=SimpleNamespace(path="/identity/me"),
    )

    with pytest.raises(HTTPException) as excinfo:
        await route_helpers.resolve_identity(request)

    assert excinfo.value.status_code == 403
    assert excinfo.value.detail["code"] == "SUSPENDED"
    assert fake_session_factory.transactions == 1
