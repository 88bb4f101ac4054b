"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly. This ensures:
1. Type validation at startup
2. Centralized configuration
3. Documentation of available settings
4. Proper defaults
"""

from functools import lru_cache
from pathlib import Path
from typing import List, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SECRET_KEY = "livepos-dev-secret-change-me"
DEFAULT_ADMIN_PASSWORD = "change-me"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Storage - one JSON document plus a directory of timestamped backups
    data_dir: Path = Path("./data")
    backup_retention: int = 200  # backups kept, oldest pruned first

    # Security
    secret_key: str = DEFAULT_SECRET_KEY
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 30  # 30 days

    # Built-in admin account (staff accounts live in the state file)
    admin_username: str = "Admin"
    admin_password: str = DEFAULT_ADMIN_PASSWORD

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:5173,http://localhost:3001"

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    app_version: str = "1.0.0"

    # Timezone used for daily/weekly/monthly/hourly metric buckets
    timezone: str = "UTC"

    # Rate limiting (login routes)
    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"

    # WebSocket
    ws_auth_timeout: float = 5.0  # seconds to wait for first-message auth
    ws_send_queue_size: int = 256  # pending outbound messages before a client is dropped

    @field_validator("backup_retention", "ws_send_queue_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        if v == DEFAULT_SECRET_KEY:
            import warnings
            warnings.warn(
                "Using default SECRET_KEY is insecure! Set SECRET_KEY environment variable.",
                UserWarning,
                stacklevel=2,
            )
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings for production safety."""
        if not self.debug:
            if self.secret_key == DEFAULT_SECRET_KEY:
                raise ValueError(
                    "FATAL: Cannot start in production mode with default SECRET_KEY. "
                    "Set a secure SECRET_KEY environment variable (minimum 32 characters)."
                )
            if len(self.secret_key) < 32:
                raise ValueError(
                    f"FATAL: SECRET_KEY must be at least 32 characters in production mode "
                    f"(current length: {len(self.secret_key)})."
                )
            if self.admin_password == DEFAULT_ADMIN_PASSWORD:
                raise ValueError(
                    "FATAL: Cannot start in production mode with the default ADMIN_PASSWORD."
                )
        return self

    @property
    def data_file(self) -> Path:
        return self.data_dir / "data.json"

    @property
    def backup_dir(self) -> Path:
        return self.data_dir / "backups"

    @property
    def environment(self) -> str:
        return "development" if self.debug else "production"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
