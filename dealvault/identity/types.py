from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class IdentityRole(str, Enum):
    USER = "USER"
    VENDOR = "VENDOR"
    ADMIN = "ADMIN"


class IdentityStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


@dataclass(frozen=True, slots=True)
class IdentityClaims:
    identity_id: UUID
    role: IdentityRole


@dataclass(frozen=True, slots=True)
class IdentityContext:
    id: UUID
    email: str
    role: IdentityRole
    status: IdentityStatus


@dataclass(frozen=True, slots=True)
class VendorContext:
    id: UUID
    email: str
    business_id: UUID


@dataclass(frozen=True, slots=True)
class VendorBinding:
    user_id: UUID
    business_id: UUID
