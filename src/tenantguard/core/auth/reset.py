"""Password recovery through credential tokens."""

from typing import Protocol, runtime_checkable

import structlog

from tenantguard.core.auth.password import PasswordHasher
from tenantguard.core.exceptions import TokenAlreadyUsed, TokenRejected, ValidationError
from tenantguard.core.privileges import Privilege
from tenantguard.core.tokens.service import TokenService
from tenantguard.core.tokens.types import TokenOutcome

logger = structlog.get_logger()


@runtime_checkable
class CredentialStore(Protocol):
    """Storage for principals' password hashes."""

    async def set_password_hash(self, principal_id: int, password_hash: str) -> bool:
        """Replace a principal's password hash.

        Returns:
            False if the principal does not exist.
        """
        ...


class PasswordResetService:
    """Resets passwords with tokens scoped to ``canRecoverPassword``."""

    def __init__(
        self,
        tokens: TokenService,
        credentials: CredentialStore,
        hasher: PasswordHasher,
    ) -> None:
        """Initialize the service.

        Args:
            tokens: Token service used to validate and claim reset tokens.
            credentials: Where the new password hash is stored.
            hasher: Password hashing implementation.
        """
        self._tokens = tokens
        self._credentials = credentials
        self._hasher = hasher

    async def reset_password(self, presented: str, new_password: str) -> int:
        """Reset a password using a recovery token.

        Run inside the caller's transaction so the token claim and the new
        hash commit together.

        Args:
            presented: Bearer value from the recovery link.
            new_password: The new password to set.

        Returns:
            The principal whose password was reset.

        Raises:
            ValidationError: If the new password is empty.
            TokenRejected: If the token is invalid, used, expired, not a
                recovery token, or bound to a principal that no longer exists.
        """
        if not new_password:
            raise ValidationError("New password must not be empty")

        validation = await self._tokens.validate(presented)
        token = validation.token
        if token is None:
            raise TokenRejected(validation.outcome)

        if not token.has_privilege(Privilege.CAN_RECOVER_PASSWORD):
            logger.warning("password_reset_wrong_token_scope", token_id=token.id)
            raise TokenRejected(TokenOutcome.INVALID)

        password_hash = self._hasher.hash(new_password)

        try:
            await self._tokens.mark_redeemed(token)
        except TokenAlreadyUsed:
            logger.warning("password_reset_token_already_used", token_id=token.id)
            raise TokenRejected(TokenOutcome.ALREADY_USED) from None

        if not await self._credentials.set_password_hash(token.principal_id, password_hash):
            logger.warning("password_reset_principal_not_found", principal_id=token.principal_id)
            raise TokenRejected(TokenOutcome.INVALID)

        logger.info("password_reset_successful", principal_id=token.principal_id)
        return token.principal_id
