"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal
from urllib.parse import urlsplit

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="",
        description="Async SQLAlchemy URL for the token store; empty runs the in-memory fallback",
    )
    database_pool_size: int = Field(default=5, description="Connection pool size")
    database_max_overflow: int = Field(default=10, description="Max overflow connections")

    # Roles
    admin_emails: list[str] = Field(
        default_factory=list, description="Exact addresses granted the administrator role"
    )
    admin_domains: list[str] = Field(
        default_factory=list, description="Email domain suffixes granted the administrator role"
    )

    # Tokens and sessions
    magic_link_expiration_minutes: int = Field(
        default=15, description="Magic link expiration in minutes"
    )
    session_expiration_days: int = Field(default=30, description="Client session lifetime in days")
    token_sweep_interval_seconds: int = Field(
        default=300, description="Interval of the expired-token sweep (0 disables it)"
    )

    # Rate limiting
    rate_limit_requests: int = Field(
        default=5, description="Magic link requests allowed per device per window"
    )
    rate_limit_window_seconds: int = Field(default=3600, description="Rate limit window length")

    # App
    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    debug: bool | None = Field(default=None, description="Debug mode (defaults based on environment)")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"],
        description="Allowed CORS origins",
    )

    # Email
    email_backend: Literal["console", "smtp", "resend", "zeptomail"] = Field(
        default="console", description="Email backend (console for dev, smtp/resend/zeptomail for prod)"
    )
    email_from: str = Field(
        default="Linkgate <noreply@linkgate.app>", description="From address for emails"
    )
    app_url: str = Field(
        default="http://localhost:5173", description="Frontend app URL for magic links"
    )

    # SMTP settings (when email_backend=smtp)
    smtp_host: str = Field(default="", description="SMTP server host")
    smtp_port: int = Field(default=587, description="SMTP server port")
    smtp_username: str = Field(default="", description="SMTP username")
    smtp_password: str = Field(default="", description="SMTP password")
    smtp_use_tls: bool = Field(default=True, description="Use TLS for SMTP")

    # Resend settings (when email_backend=resend)
    resend_api_key: str = Field(default="", description="Resend API key")

    # ZeptoMail settings (when email_backend=zeptomail)
    zeptomail_api_key: str = Field(default="", description="ZeptoMail send-mail token")
    zeptomail_url: str = Field(
        default="https://api.zeptomail.com/v1.1/email", description="ZeptoMail API endpoint"
    )

    # Sentry
    sentry_dsn: str = Field(default="", description="Sentry DSN for error tracking")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == "development"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_test(self) -> bool:
        """Check if running in test mode."""
        return self.environment == "test"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_durable_store(self) -> bool:
        """Whether a database is configured for tokens, rate limits and profiles."""
        return bool(self.database_url)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def debug_enabled(self) -> bool:
        """Get debug mode, defaulting based on environment if not explicitly set."""
        if self.debug is not None:
            return self.debug
        return self.is_development

    @computed_field  # type: ignore[prop-decorator]
    @property
    def allowed_origins(self) -> list[str]:
        """CORS origins, always including the origin serving ``app_url``."""
        origins = list(self.cors_origins)
        parsed = urlsplit(self.app_url)
        if parsed.scheme and parsed.netloc:
            app_origin = f"{parsed.scheme}://{parsed.netloc}"
            if app_origin not in origins:
                origins.append(app_origin)
        return origins


class ClientSettings(BaseSettings):
    """Settings for the client-side session manager and API client."""

    model_config = SettingsConfigDict(
        env_prefix="LINKGATE_CLIENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    base_url: str = Field(default="http://localhost:8000", description="Auth API base URL")
    storage_path: str = Field(
        default="~/.linkgate/session.json", description="File backing the local session store"
    )
    session_expiration_days: int = Field(default=30, description="Session lifetime in days")
    renew_interval_seconds: float = Field(
        default=30.0, description="Minimum spacing between activity-driven renewals"
    )
    expiry_sweep_seconds: float = Field(
        default=300.0, description="Interval of the local session expiry check"
    )
    allow_degraded_fallback: bool = Field(
        default=False, description="Create a degraded local session when the backend is down"
    )
    request_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


@lru_cache
def get_client_settings() -> ClientSettings:
    """Get cached client settings instance."""
    return ClientSettings()


# Convenience alias
settings = get_settings()
