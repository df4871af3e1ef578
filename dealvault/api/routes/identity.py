from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Request, status

from dealvault.api.routes import route_helpers
from dealvault.api.routes.route_helpers import ApiModel
from dealvault.db.repo.identities_repo import IdentitiesRepo
from dealvault.db.session import SessionLocal
from dealvault.identity.binding import bind_vendor_to_business
from dealvault.identity.types import IdentityRole

router = APIRouter(tags=["identity"])


class IdentityResponse(ApiModel):
    id: UUID
    email: str
    role: str
    status: str
    business_id: UUID | None = None


class BindVendorRequest(ApiModel):
    user_id: UUID
    business_id: UUID


class BindVendorResponse(ApiModel):
    user_id: UUID
    business_id: UUID


@router.get("/identity/me", response_model=IdentityResponse)
async def get_current_identity(request: Request) -> IdentityResponse:
    identity = await route_helpers.resolve_identity(request)
    business_id: UUID | None = None
    if identity.role is IdentityRole.VENDOR:
        async with SessionLocal.begin() as session:
            ownership = await IdentitiesRepo.get_ownership_by_user(session, identity.id)
        business_id = ownership.business_id if ownership is not None else None
    return IdentityResponse(
        id=identity.id,
        email=identity.email,
        role=identity.role.value,
        status=identity.status.value,
        business_id=business_id,
    )


@router.post(
    "/identity/bind-vendor",
    response_model=BindVendorResponse,
    status_code=status.HTTP_201_CREATED,
)
async def bind_vendor(payload: BindVendorRequest, request: Request) -> BindVendorResponse:
    admin = await route_helpers.resolve_role(request, IdentityRole.ADMIN)
    result = await bind_vendor_to_business(
        caller=admin,
        user_id=payload.user_id,
        business_id=payload.business_id,
    )
    binding = route_helpers.unwrap(result)
    return BindVendorResponse(user_id=binding.user_id, business_id=binding.business_id)
