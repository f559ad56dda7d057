"""Bearer value encoding and secret generation.

A bearer value is ``base64("<principalId>:<secret>")`` with the standard
alphabet. External links carry exactly this string, so the format must not
change.
"""

import base64
import re
import secrets

# Matches the secret length used by existing links.
TOKEN_SECRET_BYTES = 61

_PRINCIPAL_ID = re.compile(r"-?\d+")


def generate_secret(num_bytes: int = TOKEN_SECRET_BYTES) -> str:
    """Generate a cryptographically secure token secret.

    Returns:
        URL-safe base64 encoded secret.
    """
    return secrets.token_urlsafe(num_bytes)


def encode_bearer(principal_id: int, secret: str) -> str:
    """Build the bearer value for a token."""
    raw = f"{principal_id}:{secret}".encode()
    return base64.b64encode(raw).decode("ascii")


def decode_bearer(bearer: str) -> tuple[int, str] | None:
    """Split a bearer value into principal id and secret.

    Args:
        bearer: The presented value.

    Returns:
        ``(principal_id, secret)``, or None when the value is not valid
        base64, not UTF-8, has no ``:`` separator or carries a non-numeric
        principal id.
    """
    if not bearer:
        return None
    try:
        raw = base64.b64decode(bearer.strip(), validate=True).decode("utf-8")
    except ValueError:
        return None

    principal, sep, secret = raw.partition(":")
    if not sep or not _PRINCIPAL_ID.fullmatch(principal):
        return None
    return int(principal), secret
