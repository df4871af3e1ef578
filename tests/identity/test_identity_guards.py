from __future__ import annotations

from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest

from dealvault.core.results import FailureCode
from dealvault.identity import guards
from dealvault.identity.tokens import sign_identity_token
from dealvault.identity.types import IdentityContext, IdentityRole, IdentityStatus

SESSION = SimpleNamespace()


def _identity_row(identity_id: UUID, *, role: str, status: str = "ACTIVE") -> SimpleNamespace:
    return SimpleNamespace(id=identity_id, email=f"{role.lower()}@example.com", role=role, status=status)


def _patch_identity(monkeypatch, row: SimpleNamespace | None) -> None:
    async def fake_get_by_id(session, identity_id):  # noqa: ARG001
        return row

    monkeypatch.setattr(guards.IdentitiesRepo, "get_by_id", fake_get_by_id)


def _patch_ownership(monkeypatch, business_id: UUID | None) -> None:
    async def fake_get_ownership_by_user(session, user_id):  # noqa: ARG001
        if business_id is None:
            return None
        return SimpleNamespace(user_id=user_id, business_id=business_id)

    monkeypatch.setattr(guards.IdentitiesRepo, "get_ownership_by_user", fake_get_ownership_by_user)


@pytest.mark.asyncio
async def test_missing_credential_is_unauthenticated() -> None:
    result = await guards.authenticate_identity(SESSION, None)
    assert result.ok is False
    assert result.code is FailureCode.UNAUTHENTICATED


@pytest.mark.asyncio
async def test_garbage_credential_is_unauthenticated() -> None:
    result = await guards.authenticate_identity(SESSION, "not-a-jwt")
    assert result.code is FailureCode.UNAUTHENTICATED


@pytest.mark.asyncio
async def test_valid_credential_resolves_identity(monkeypatch) -> None:
    identity_id = uuid4()
    _patch_identity(monkeypatch, _identity_row(identity_id, role="USER"))
    token = sign_identity_token(identity_id=identity_id, role=IdentityRole.USER)

    result = await guards.authenticate_identity(SESSION, token)

    assert result.ok is True
    assert result.value.id == identity_id
    assert result.value.role is IdentityRole.USER


@pytest.mark.asyncio
async def test_stored_role_wins_over_token_claim(monkeypatch) -> None:
    identity_id = uuid4()
    _patch_identity(monkeypatch, _identity_row(identity_id, role="USER"))
    token = sign_identity_token(identity_id=identity_id, role=IdentityRole.ADMIN)

    result = await guards.authenticate_identity(SESSION, token)

    assert result.code is FailureCode.UNAUTHENTICATED


@pytest.mark.asyncio
async def test_unknown_identity_is_unauthenticated(monkeypatch) -> None:
    _patch_identity(monkeypatch, None)
    token = sign_identity_token(identity_id=uuid4(), role=IdentityRole.USER)

    result = await guards.authenticate_identity(SESSION, token)

    assert result.code is FailureCode.UNAUTHENTICATED


@pytest.mark.asyncio
async def test_suspended_identity_is_rejected(monkeypatch) -> None:
    identity_id = uuid4()
    _patch_identity(monkeypatch, _identity_row(identity_id, role="VENDOR", status="SUSPENDED"))
    token = sign_identity_token(identity_id=identity_id, role=IdentityRole.VENDOR)

    result = await guards.authenticate_identity(SESSION, token)

    assert result.code is FailureCode.SUSPENDED


@pytest.mark.asyncio
async def test_require_role_forbids_other_roles(monkeypatch) -> None:
    identity_id = uuid4()
    _patch_identity(monkeypatch, _identity_row(identity_id, role="USER"))
    token = sign_identity_token(identity_id=identity_id, role=IdentityRole.USER)

    result = await guards.require_role(SESSION, token, IdentityRole.ADMIN)

    assert result.code is FailureCode.FORBIDDEN


@pytest.mark.asyncio
async def test_vendor_context_carries_owned_business(monkeypatch) -> None:
    identity_id = uuid4()
    business_id = uuid4()
    _patch_identity(monkeypatch, _identity_row(identity_id, role="VENDOR"))
    _patch_ownership(monkeypatch, business_id)
    token = sign_identity_token(identity_id=identity_id, role=IdentityRole.VENDOR)

    result = await guards.require_vendor_ownership(SESSION, token)

    assert result.ok is True
    assert result.value.business_id == business_id


@pytest.mark.asyncio
async def test_unbound_vendor_is_forbidden(monkeypatch) -> None:
    _patch_ownership(monkeypatch, None)
    vendor = IdentityContext(
        id=uuid4(),
        email="vendor@example.com",
        role=IdentityRole.VENDOR,
        status=IdentityStatus.ACTIVE,
    )

    result = await guards.resolve_vendor_context(SESSION, vendor)

    assert result.code is FailureCode.FORBIDDEN


@pytest.mark.asyncio
@pytest.mark.parametrize("role", [IdentityRole.USER, IdentityRole.ADMIN])
async def test_non_vendor_roles_never_get_vendor_context(role: IdentityRole) -> None:
    identity = IdentityContext(id=uuid4(), email="x@example.com", role=role, status=IdentityStatus.ACTIVE)

    result = await guards.resolve_vendor_context(SESSION, identity)

    assert result.code is FailureCode.FORBIDDEN
