"""
Identifier generation for records and requests.
"""
import secrets
import time

ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def ulid() -> str:
    """
    Generate a ULID-like identifier: 10 timestamp chars + 16 random chars.
    Ids created later sort after ids created earlier (millisecond resolution).
    """
    timestamp = int(time.time() * 1000)
    random_part = "".join(secrets.choice(ALPHABET) for _ in range(16))
    return f"{base32_encode(timestamp, 10)}{random_part}"


def base32_encode(num: int, length: int) -> str:
    """Crockford base32, left-padded to length."""
    result = []
    while num > 0 and len(result) < length:
        num, remainder = divmod(num, 32)
        result.append(ALPHABET[remainder])
    while len(result) < length:
        result.append("0")
    return "".join(reversed(result))


def request_id(header_value: str | None = None) -> str:
    """
    Get or generate a request ID.
    If header_value is provided, use it; otherwise generate a new ULID.
    """
    if header_value and header_value.strip():
        return header_value.strip()
    return ulid()
