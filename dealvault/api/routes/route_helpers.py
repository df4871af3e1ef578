from __future__ import annotations

from typing import NoReturn, TypeVar

import structlog
from fastapi import HTTPException, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from dealvault.core.results import Failure, Result
from dealvault.db.session import SessionLocal
from dealvault.identity.guards import authenticate_identity, require_role, require_vendor_ownership
from dealvault.identity.tokens import extract_bearer_token
from dealvault.identity.types import IdentityContext, IdentityRole, VendorContext

logger = structlog.get_logger(__name__)

T = TypeVar("T")

VENDOR_SESSION_HEADER = "X-Vendor-Session"


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def raise_for_failure(failure: Failure, *, retry_after_seconds: int | None = None) -> NoReturn:
    headers = None
    if retry_after_seconds is not None:
        headers = {"Retry-After": str(max(1, retry_after_seconds))}
    elif failure.retryable:
        headers = {"Retry-After": "1"}
    raise HTTPException(
        status_code=failure.status_code,
        detail={"code": failure.code.value, "message": failure.message},
        headers=headers,
    )


def unwrap(result: Result[T]) -> T:
    if isinstance(result, Failure):
        raise_for_failure(result)
    return result.value


def bearer_credential(request: Request) -> str | None:
    return extract_bearer_token(request.headers.get("Authorization"))


def vendor_session_token(request: Request) -> str | None:
    token = request.headers.get(VENDOR_SESSION_HEADER)
    return token.strip() if token and token.strip() else None


async def resolve_identity(request: Request) -> IdentityContext:
    async with SessionLocal.begin() as session:
        result = await authenticate_identity(session, bearer_credential(request))
    if isinstance(result, Failure):
        logger.info("identity_auth_failed", failure_code=result.code.value, path=request.url.path)
    return unwrap(result)


async def resolve_role(request: Request, role: IdentityRole) -> IdentityContext:
    async with SessionLocal.begin() as session:
        result = await require_role(session, bearer_credential(request), role)
    if isinstance(result, Failure):
        logger.info("identity_role_denied", failure_code=result.code.value, path=request.url.path)
    return unwrap(result)


async def resolve_vendor(request: Request) -> VendorContext:
    async with SessionLocal.begin() as session:
        result = await require_vendor_ownership(session, bearer_credential(request))
    if isinstance(result, Failure):
        logger.info("vendor_auth_failed", failure_code=result.code.value, path=request.url.path)
    return unwrap(result)
