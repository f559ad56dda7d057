"""Password hashing and recovery."""

from tenantguard.core.auth.password import BcryptPasswordHasher, PasswordHasher
from tenantguard.core.auth.reset import CredentialStore, PasswordResetService

__all__ = [
    "BcryptPasswordHasher",
    "CredentialStore",
    "PasswordHasher",
    "PasswordResetService",
]
