"""Credential tokens: bearer codec, validation and redemption."""

from tenantguard.core.tokens.codec import decode_bearer, encode_bearer, generate_secret
from tenantguard.core.tokens.repository import TokenRepository
from tenantguard.core.tokens.service import TokenService
from tenantguard.core.tokens.types import (
    CredentialToken,
    IssuedToken,
    TokenOutcome,
    TokenState,
    TokenValidation,
)

__all__ = [
    "CredentialToken",
    "IssuedToken",
    "TokenOutcome",
    "TokenRepository",
    "TokenService",
    "TokenState",
    "TokenValidation",
    "decode_bearer",
    "encode_bearer",
    "generate_secret",
]
