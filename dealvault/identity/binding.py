from __future__ import annotations

from typing import assert_never
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError

from dealvault.core.results import FailureCode, Ok, Result, fail
from dealvault.db.errors import DbErrorKind, classify_db_error
from dealvault.db.repo.businesses_repo import BusinessesRepo
from dealvault.db.repo.identities_repo import IdentitiesRepo
from dealvault.db.session import SessionLocal
from dealvault.identity.types import IdentityContext, IdentityRole, VendorBinding

logger = structlog.get_logger(__name__)

OWNERSHIP_CONSTRAINTS = ("uq_vendor_ownerships_user", "uq_vendor_ownerships_business")


def _check_bind_target_role(role: IdentityRole) -> Result[IdentityRole]:
    if role is IdentityRole.VENDOR:
        return Ok(role)
    if role is IdentityRole.USER:
        return fail(FailureCode.FORBIDDEN, "USER identities cannot own a business")
    if role is IdentityRole.ADMIN:
        return fail(FailureCode.FORBIDDEN, "ADMIN identities cannot own a business")
    assert_never(role)


async def bind_vendor_to_business(
    *,
    caller: IdentityContext,
    user_id: UUID,
    business_id: UUID,
) -> Result[VendorBinding]:
    if caller.role is not IdentityRole.ADMIN:
        return fail(FailureCode.FORBIDDEN, "ADMIN role required")

    try:
        async with SessionLocal.begin() as session:
            target = await IdentitiesRepo.get_by_id(session, user_id)
            if target is None:
                return fail(FailureCode.NOT_FOUND, "identity not found")
            role_check = _check_bind_target_role(IdentityRole(target.role))
            if not role_check.ok:
                return role_check

            if await IdentitiesRepo.get_ownership_by_user(session, user_id) is not None:
                return fail(FailureCode.ALREADY_BOUND, "vendor is already bound to a business")

            business = await BusinessesRepo.get_by_id(session, business_id)
            if business is None:
                return fail(FailureCode.NOT_FOUND, "business not found")
            if await IdentitiesRepo.get_ownership_by_business(session, business_id) is not None:
                return fail(FailureCode.ALREADY_BOUND, "business is already bound to a vendor")

            await IdentitiesRepo.create_ownership(session, user_id=user_id, business_id=business_id)
            await BusinessesRepo.claim_owner_if_unset(
                session,
                business_id=business_id,
                owner_user_id=user_id,
            )
    except IntegrityError as exc:
        info = classify_db_error(exc, known_constraints=OWNERSHIP_CONSTRAINTS)
        if info.kind is DbErrorKind.UNIQUE_VIOLATION:
            return fail(FailureCode.ALREADY_BOUND, "vendor or business is already bound")
        if info.kind is DbErrorKind.FOREIGN_KEY_VIOLATION:
            return fail(FailureCode.NOT_FOUND, "identity or business not found")
        raise

    logger.info(
        "vendor_business_bound",
        admin_id=str(caller.id),
        user_id=str(user_id),
        business_id=str(business_id),
    )
    return Ok(VendorBinding(user_id=user_id, business_id=business_id))
