"""Application configuration"""

import logging
from datetime import timedelta

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class TokenConfig(BaseModel):
    """Immutable token configuration injected into the minter and the engine"""

    model_config = ConfigDict(frozen=True)

    signing_key: str
    signing_algorithm: str = "HS256"
    issuer: str = "jwt-auth-service"
    audience: str = "jwt-auth-api"
    access_token_lifetime: timedelta = timedelta(minutes=15)
    refresh_token_lifetime: timedelta = timedelta(days=7)
    store_timeout_seconds: float = 5.0
    revoke_chain_on_reuse: bool = True


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_prefix="AUTH_SERVICE__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = "development"
    port: int = 8003

    # Database
    db_url: str = "sqlite:///data/auth.db"

    # JWT Settings
    signing_key: str = ""
    signing_algorithm: str = "HS256"
    issuer: str = "jwt-auth-service"
    audience: str = "jwt-auth-api"
    access_token_lifetime_minutes: int = Field(default=15, ge=1, le=1440)
    refresh_token_lifetime_days: int = Field(default=7, ge=1, le=365)

    # Refresh token store
    store_timeout_seconds: float = Field(default=5.0, gt=0)
    revoke_chain_on_reuse: bool = True

    # Cookies
    access_cookie_secure: bool = True

    # Seed admin account (created at startup when a password is set)
    admin_username: str = "admin"
    admin_email: str = "admin@example.com"
    admin_password: str = ""

    # Logging
    log_level: str = "INFO"

    # Version
    version: str = "0.1.0"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Accept only standard logging level names"""
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level

    @field_validator("signing_algorithm")
    @classmethod
    def validate_signing_algorithm(cls, value: str) -> str:
        """Only symmetric HMAC algorithms are supported"""
        algorithm = value.upper()
        if algorithm not in {"HS256", "HS384", "HS512"}:
            raise ValueError("signing_algorithm must be an HMAC algorithm (HS256/HS384/HS512)")
        return algorithm

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.environment.lower() == "development"

    def token_config(self) -> TokenConfig:
        """Build the frozen token configuration from these settings"""
        return TokenConfig(
            signing_key=self.signing_key,
            signing_algorithm=self.signing_algorithm,
            issuer=self.issuer,
            audience=self.audience,
            access_token_lifetime=timedelta(minutes=self.access_token_lifetime_minutes),
            refresh_token_lifetime=timedelta(days=self.refresh_token_lifetime_days),
            store_timeout_seconds=self.store_timeout_seconds,
            revoke_chain_on_reuse=self.revoke_chain_on_reuse,
        )


# Create settings instance
settings = Settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger("auth-service")
