"""Credential token domain types."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from tenantguard.core.privileges import codec


class TokenOutcome(str, Enum):
    """Result of validating a presented bearer value."""

    VALID = "valid"
    INVALID = "invalid"
    ALREADY_USED = "already_used"
    EXPIRED = "expired"

    @property
    def message(self) -> str:
        """User-facing message for the outcome."""
        return _MESSAGES[self]


_MESSAGES = {
    TokenOutcome.VALID: "Token is valid",
    TokenOutcome.INVALID: "Invalid token",
    TokenOutcome.ALREADY_USED: "This link has expired.",
    TokenOutcome.EXPIRED: (
        "This link has expired. You may contact your team members to get a new link."
    ),
}


class TokenState(str, Enum):
    """Lifecycle state of a stored token.

    EXPIRED is never stored; it is derived from ``expires_at`` when the
    token is looked at.
    """

    ACTIVE = "active"
    REDEEMED = "redeemed"
    EXPIRED = "expired"


class CredentialToken(BaseModel):
    """Single-use (or multi-use) secret bound to a principal."""

    model_config = ConfigDict(frozen=True)

    id: int
    principal_id: int
    secret: str = Field(repr=False)
    expires_at: datetime
    used: bool = False
    single_use: bool = True
    privileges: frozenset[str] = frozenset()
    created_at: datetime

    def state(self, now: datetime) -> TokenState:
        """Derive the lifecycle state at ``now``.

        Redemption wins over expiry.
        """
        if self.used:
            return TokenState.REDEEMED
        if self.expires_at < now:
            return TokenState.EXPIRED
        return TokenState.ACTIVE

    def has_privilege(self, privilege: str | Enum) -> bool:
        """Check whether the token's privilege scope contains a privilege."""
        return codec.privilege_name(privilege) in self.privileges


class TokenValidation(BaseModel):
    """Validation result: the outcome, plus the token when VALID."""

    model_config = ConfigDict(frozen=True)

    outcome: TokenOutcome
    token: CredentialToken | None = None

    @property
    def is_valid(self) -> bool:
        """Whether the token may be used."""
        return self.outcome is TokenOutcome.VALID

    @property
    def message(self) -> str:
        """User-facing message for the outcome."""
        return self.outcome.message


class IssuedToken(BaseModel):
    """A freshly issued token together with its bearer value."""

    model_config = ConfigDict(frozen=True)

    token: CredentialToken
    bearer: str
