"""Credential token validation, redemption and issuance.

Validation pipeline for a presented bearer value:

1. Decode ``base64("<principalId>:<secret>")``; failure -> INVALID.
2. Look up ``(principalId, secret)``; miss -> INVALID.
3. ``used`` -> ALREADY_USED. This is checked before expiry, so a token
   that is both used and expired reports ALREADY_USED.
4. ``expires_at < now`` -> EXPIRED.
5. Otherwise VALID.

Redemption claims the token with a storage-level compare-and-swap on
``used``; of two concurrent redemptions exactly one sees VALID.
"""

from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog

from tenantguard.config import settings
from tenantguard.core.exceptions import AccessDenied, TokenAlreadyUsed
from tenantguard.core.privileges import Privilege, normalize
from tenantguard.core.rbac.resolver import AuthorityResolver
from tenantguard.core.tokens.codec import decode_bearer, encode_bearer, generate_secret
from tenantguard.core.tokens.repository import TokenRepository
from tenantguard.core.tokens.types import (
    CredentialToken,
    IssuedToken,
    TokenOutcome,
    TokenValidation,
)

logger = structlog.get_logger()

RedemptionAction = Callable[[CredentialToken], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenService:
    """Service for credential token operations."""

    def __init__(
        self,
        tokens: TokenRepository,
        resolver: AuthorityResolver | None = None,
        clock: Callable[[], datetime] = _utcnow,
        token_lifetime: timedelta | None = None,
        refresher_lifetime: timedelta | None = None,
        password_reset_lifetime: timedelta | None = None,
        secret_bytes: int | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            tokens: Token repository.
            resolver: Resolves actors issuing tokens on behalf of others.
            clock: Returns the current time.
            token_lifetime: Default token lifetime.
            refresher_lifetime: Refresher token lifetime.
            password_reset_lifetime: Password reset token lifetime.
            secret_bytes: Random bytes per secret.
        """
        self._tokens = tokens
        self._resolver = resolver
        self._clock = clock
        self._token_lifetime = token_lifetime or timedelta(
            seconds=settings.token_expiration_seconds
        )
        self._refresher_lifetime = refresher_lifetime or timedelta(
            seconds=settings.refresher_token_expiration_seconds
        )
        self._password_reset_lifetime = password_reset_lifetime or timedelta(
            seconds=settings.password_reset_expiration_seconds
        )
        self._secret_bytes = secret_bytes or settings.token_secret_bytes

    async def validate(self, presented: str) -> TokenValidation:
        """Validate a presented bearer value without consuming it.

        Args:
            presented: The bearer value.

        Returns:
            The outcome; the token is attached only when VALID.
        """
        decoded = decode_bearer(presented)
        if decoded is None:
            logger.info("token_rejected", outcome=TokenOutcome.INVALID.value, reason="malformed")
            return TokenValidation(outcome=TokenOutcome.INVALID)

        principal_id, secret = decoded
        token = await self._tokens.get_by_principal_and_secret(principal_id, secret)
        if token is None:
            logger.info(
                "token_rejected",
                outcome=TokenOutcome.INVALID.value,
                principal_id=principal_id,
                reason="not_found",
            )
            return TokenValidation(outcome=TokenOutcome.INVALID)

        if token.used:
            outcome = TokenOutcome.ALREADY_USED
        elif token.expires_at < self._clock():
            outcome = TokenOutcome.EXPIRED
        else:
            return TokenValidation(outcome=TokenOutcome.VALID, token=token)

        logger.info(
            "token_rejected",
            outcome=outcome.value,
            token_id=token.id,
            principal_id=principal_id,
        )
        return TokenValidation(outcome=outcome)

    async def mark_redeemed(self, token: CredentialToken) -> CredentialToken:
        """Claim a token returned by ``validate``.

        Multi-use tokens are returned unchanged.

        Returns:
            The token as redeemed.

        Raises:
            TokenAlreadyUsed: If another redemption claimed the token first.
        """
        if not token.single_use:
            return token
        if not await self._tokens.claim(token.id):
            raise TokenAlreadyUsed(f"Token {token.id} was already redeemed")
        logger.info("token_redeemed", token_id=token.id, principal_id=token.principal_id)
        return token.model_copy(update={"used": True})

    async def redeem(
        self,
        presented: str,
        action: RedemptionAction | None = None,
    ) -> TokenValidation:
        """Validate, claim and use a token in one step.

        Call this inside the caller's database transaction: the claim and
        whatever ``action`` writes then commit or roll back together.

        Args:
            presented: The bearer value.
            action: Protected action run with the claimed token.

        Returns:
            VALID with the redeemed token, or the rejection outcome. Losing a
            concurrent claim reports ALREADY_USED.
        """
        validation = await self.validate(presented)
        if validation.token is None:
            return validation

        try:
            token = await self.mark_redeemed(validation.token)
        except TokenAlreadyUsed:
            logger.info(
                "token_rejected",
                outcome=TokenOutcome.ALREADY_USED.value,
                token_id=validation.token.id,
                reason="lost_claim",
            )
            return TokenValidation(outcome=TokenOutcome.ALREADY_USED)

        if action is not None:
            await action(token)
        return TokenValidation(outcome=TokenOutcome.VALID, token=token)

    async def issue(
        self,
        principal_id: int,
        privileges: Iterable[str | Enum] = (),
        expires_in: timedelta | None = None,
        single_use: bool = True,
    ) -> IssuedToken:
        """Issue a new token for a principal.

        Args:
            principal_id: Principal the token is bound to.
            privileges: Privilege scope carried by the token.
            expires_in: Lifetime; defaults to the configured token lifetime.
            single_use: Whether redemption consumes the token.

        Returns:
            The stored token and its bearer value.
        """
        scope = normalize(privileges)
        expires_at = self._clock() + (expires_in or self._token_lifetime)
        secret = generate_secret(self._secret_bytes)
        token = await self._tokens.create(
            principal_id,
            secret,
            expires_at,
            single_use=single_use,
            privileges=scope,
        )
        logger.info(
            "token_issued",
            token_id=token.id,
            principal_id=principal_id,
            single_use=single_use,
            privileges=sorted(scope),
            expires_at=expires_at.isoformat(),
        )
        return IssuedToken(token=token, bearer=encode_bearer(principal_id, secret))

    async def issue_password_reset(
        self, principal_id: int, actor_id: int | None = None
    ) -> IssuedToken:
        """Issue a password recovery token.

        Args:
            principal_id: Principal whose password may be reset.
            actor_id: Principal requesting the reset for someone else; must
                hold ``canResetPassword`` globally. None when the principal
                asked for it themselves.

        Raises:
            AccessDenied: If the actor may not reset passwords.
        """
        if actor_id is not None:
            if self._resolver is None:
                raise AccessDenied(actor_id, Privilege.CAN_RESET_PASSWORD.value)
            authority = await self._resolver.resolve(actor_id)
            if not authority.has_global_privilege(Privilege.CAN_RESET_PASSWORD):
                raise AccessDenied(actor_id, Privilege.CAN_RESET_PASSWORD.value)

        return await self.issue(
            principal_id,
            [Privilege.CAN_RECOVER_PASSWORD],
            expires_in=self._password_reset_lifetime,
        )

    async def issue_refresher(self, principal_id: int) -> IssuedToken:
        """Issue a long-lived multi-use token that can mint fresh tokens."""
        return await self.issue(
            principal_id,
            [Privilege.CAN_REFRESH_TOKENS],
            expires_in=self._refresher_lifetime,
            single_use=False,
        )

    async def exchange_refresher(self, presented: str) -> IssuedToken | None:
        """Trade a valid refresher token for a fresh default token.

        Returns:
            The new token, or None if the presented value is not a valid
            refresher token.
        """
        validation = await self.validate(presented)
        token = validation.token
        if token is None or not token.has_privilege(Privilege.CAN_REFRESH_TOKENS):
            return None
        return await self.issue(token.principal_id)
