"""Credential resolution and role checks that gate every voucher operation.

The identity row is the authority for role and status. The token only names
the identity; a token whose role claim disagrees with the stored role is
treated as invalid.
"""

from __future__ import annotations

from typing import assert_never

from sqlalchemy.ext.asyncio import AsyncSession

from dealvault.core.results import FailureCode, Ok, Result, fail
from dealvault.db.repo.identities_repo import IdentitiesRepo
from dealvault.identity.tokens import IdentityTokenError, decode_identity_token
from dealvault.identity.types import IdentityContext, IdentityRole, IdentityStatus, VendorContext


async def authenticate_identity(
    session: AsyncSession,
    credential: str | None,
) -> Result[IdentityContext]:
    if not credential:
        return fail(FailureCode.UNAUTHENTICATED, "missing credential")
    try:
        claims = decode_identity_token(credential)
    except IdentityTokenError:
        return fail(FailureCode.UNAUTHENTICATED, "invalid or expired credential")

    identity = await IdentitiesRepo.get_by_id(session, claims.identity_id)
    if identity is None:
        return fail(FailureCode.UNAUTHENTICATED, "invalid or expired credential")
    try:
        role = IdentityRole(identity.role)
        status = IdentityStatus(identity.status)
    except ValueError:
        return fail(FailureCode.UNAUTHENTICATED, "invalid or expired credential")
    if role is not claims.role:
        return fail(FailureCode.UNAUTHENTICATED, "invalid or expired credential")
    if status is not IdentityStatus.ACTIVE:
        return fail(FailureCode.SUSPENDED, "identity is suspended")

    return Ok(IdentityContext(id=identity.id, email=identity.email, role=role, status=status))


async def require_role(
    session: AsyncSession,
    credential: str | None,
    role: IdentityRole,
) -> Result[IdentityContext]:
    authenticated = await authenticate_identity(session, credential)
    if not authenticated.ok:
        return authenticated
    if authenticated.value.role is not role:
        return fail(FailureCode.FORBIDDEN, f"{role.value} role required")
    return authenticated


async def resolve_vendor_context(
    session: AsyncSession,
    identity: IdentityContext,
) -> Result[VendorContext]:
    if identity.role is IdentityRole.VENDOR:
        ownership = await IdentitiesRepo.get_ownership_by_user(session, identity.id)
        if ownership is None:
            return fail(FailureCode.FORBIDDEN, "vendor is not bound to a business")
        return Ok(
            VendorContext(
                id=identity.id,
                email=identity.email,
                business_id=ownership.business_id,
            )
        )
    if identity.role is IdentityRole.USER or identity.role is IdentityRole.ADMIN:
        return fail(FailureCode.FORBIDDEN, "VENDOR role required")
    assert_never(identity.role)


async def require_vendor_ownership(
    session: AsyncSession,
    credential: str | None,
) -> Result[VendorContext]:
    authenticated = await authenticate_identity(session, credential)
    if not authenticated.ok:
        return authenticated
    return await resolve_vendor_context(session, authenticated.value)
