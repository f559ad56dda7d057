"""Settings loaded from the environment."""

import os


class Settings:
    """Application settings loaded from environment."""

    def __init__(self) -> None:
        """Load settings from environment variables."""
        self.database_url = os.getenv("DATABASE_URL", "postgresql://localhost:5432/tenantguard")

        # Connection pool
        self.db_pool_min_size = int(os.getenv("DB_POOL_MIN_SIZE", "2"))
        self.db_pool_max_size = int(os.getenv("DB_POOL_MAX_SIZE", "10"))

        # Credential tokens
        self.token_expiration_seconds = int(os.getenv("TOKEN_EXPIRATION_SECONDS", "172800"))
        self.refresher_token_expiration_seconds = int(
            os.getenv("REFRESHER_TOKEN_EXPIRATION_SECONDS", "2592000")
        )
        self.password_reset_expiration_seconds = int(
            os.getenv("PASSWORD_RESET_EXPIRATION_SECONDS", "3600")
        )
        self.token_secret_bytes = int(os.getenv("TOKEN_SECRET_BYTES", "61"))

        # Authority cache
        self.authority_cache_size = int(os.getenv("AUTHORITY_CACHE_SIZE", "10000"))


settings = Settings()
