"""Application configuration read from environment variables."""

import os
from zoneinfo import ZoneInfo

from src.utils.errors import ConfigurationError


class AppConfig:
    """Centralized application configuration.

    Values are read on access so tests and serverless cold starts see the
    current environment.
    """

    DEFAULT_TIMEZONE = "Asia/Riyadh"
    DEFAULT_JWT_ALGORITHM = "HS256"
    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 100

    @classmethod
    def jwt_secret(cls) -> str:
        """Signing secret for bearer credentials. Mandatory, no default."""
        secret = os.environ.get("JWT_SECRET", "").strip()
        if not secret:
            raise ConfigurationError("JWT_SECRET must be set")
        return secret

    @classmethod
    def jwt_algorithm(cls) -> str:
        return os.environ.get("JWT_ALGORITHM", cls.DEFAULT_JWT_ALGORITHM)

    @classmethod
    def timezone(cls) -> ZoneInfo:
        """Timezone used to decide whether a slot is in the future."""
        name = os.environ.get("APP_TIMEZONE", cls.DEFAULT_TIMEZONE)
        try:
            return ZoneInfo(name)
        except (KeyError, ValueError) as e:
            raise ConfigurationError(f"Unknown APP_TIMEZONE: {name}") from e

    @classmethod
    def is_development(cls) -> bool:
        return os.environ.get("NODE_ENV", "").lower() in ("development", "local")

    @classmethod
    def validate(cls) -> None:
        """Fail fast on missing mandatory settings."""
        cls.jwt_secret()
        cls.timezone()
