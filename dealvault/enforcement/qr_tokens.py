from __future__ import annotations

import re
import secrets
from datetime import datetime, timezone

QR_TOKEN_PREFIX = "VCH"
QR_TOKEN_DIGEST_LENGTH = 12
QR_TOKEN_NONCE_LENGTH = 14
QR_TOKEN_PATTERN = re.compile(r"^VCH-[A-Z0-9]+-[A-Z0-9]{12}$")
_BASE36_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _to_base36(value: int) -> str:
    if value <= 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def _random_base36(length: int) -> str:
    return "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(length))


def generate_qr_token(*, now_utc: datetime | None = None) -> str:
    """Mint ``VCH-<ms stamp><nonce>-<tail>``.

    Nonce and tail are 26 random base36 characters, about 134 bits; the stamp
    only orders tokens and carries no secrecy.
    """
    issued_at = now_utc or datetime.now(timezone.utc)
    stamp = _to_base36(int(issued_at.timestamp() * 1000))
    nonce = _random_base36(QR_TOKEN_NONCE_LENGTH)
    tail = _random_base36(QR_TOKEN_DIGEST_LENGTH)
    return f"{QR_TOKEN_PREFIX}-{stamp}{nonce}-{tail}"


def is_well_formed_qr_token(value: str) -> bool:
    return QR_TOKEN_PATTERN.fullmatch(value) is not None


def mask_qr_token(value: str) -> str:
    visible = value[:-QR_TOKEN_DIGEST_LENGTH] if len(value) > QR_TOKEN_DIGEST_LENGTH else ""
    return f"{visible}{'*' * QR_TOKEN_DIGEST_LENGTH}"
