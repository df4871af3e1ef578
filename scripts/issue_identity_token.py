"""Mint an identity bearer token for local testing of the voucher API."""

from __future__ import annotations

import argparse
from uuid import UUID

from dealvault.identity.tokens import sign_identity_token
from dealvault.identity.types import IdentityRole


def main() -> int:
    parser = argparse.ArgumentParser(description="Sign an identity token for an existing identity row.")
    parser.add_argument("--identity-id", required=True, type=UUID)
    parser.add_argument("--role", required=True, choices=[role.value for role in IdentityRole])
    parser.add_argument("--ttl-hours", type=int, default=None)
    args = parser.parse_args()

    token = sign_identity_token(
        identity_id=args.identity_id,
        role=IdentityRole(args.role),
        ttl_hours=args.ttl_hours,
    )
    print(token)  # noqa: T201
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
