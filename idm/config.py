"""Configuration management using Pydantic Settings."""

from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database configuration settings for the cache store."""

    url: str = Field(..., description="Async database URL, e.g. postgresql+asyncpg://...")
    pool_size: int = Field(default=10, ge=1, le=100, description="Database connection pool size")
    max_overflow: int = Field(
        default=20,
        ge=0,
        le=100,
        description="Maximum number of connections that can be created beyond pool_size",
    )
    pool_timeout: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Timeout in seconds for getting a connection from the pool",
    )
    echo: bool = Field(default=False, description="Enable SQLAlchemy query logging")

    model_config = SettingsConfigDict(env_prefix="DATABASE_", case_sensitive=False)


class IdentitySettings(BaseSettings):
    """Identity broker and application routing settings."""

    app_domain: str = Field(..., description="Public origin of this application")
    identity_app_url: str = Field(..., description="Base URL of the identity broker")
    outbound_path: str = Field(default="/login/out", description="Local outbound route")
    return_uri: str = Field(default="/login/return", description="Local callback route")
    logout_path: str = Field(default="/logout", description="Local logout route")
    disallowed_redirect_path: str = Field(
        default="/error", description="Where unauthenticated or failed logins are sent"
    )
    login_on_disallow: bool = Field(
        default=False,
        description="Send unauthenticated users to log in instead of the disallowed path",
    )
    default_back_to_path: str = Field(default="/", description="Default post-login path")
    default_policy: str = Field(..., description="Default identity broker policy")
    default_journey: str = Field(..., description="Default identity broker journey")
    client_id: str = Field(..., description="Client identifier passed to the identity broker")
    service_id: str = Field(..., description="Service identifier passed to the identity broker")
    redirect_uri_fqdn: Optional[str] = Field(
        default=None, description="Absolute callback URL; defaults to app_domain + return_uri"
    )

    model_config = SettingsConfigDict(env_prefix="IDM_", case_sensitive=False)

    @field_validator("outbound_path", "return_uri", "logout_path", "disallowed_redirect_path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Validate that route paths are absolute."""
        if not v.startswith("/"):
            raise ValueError(f"Path must start with '/', got '{v}'")
        return v

    @property
    def redirect_uri(self) -> str:
        """Absolute callback URL registered with the identity provider."""
        if self.redirect_uri_fqdn:
            return self.redirect_uri_fqdn
        return self.app_domain.rstrip("/") + self.return_uri


class OidcSettings(BaseSettings):
    """OpenID Connect provider settings."""

    tenant: str = Field(..., description="Identity provider tenant name")
    client_id: str = Field(..., description="OIDC client ID")
    client_secret: str = Field(..., description="OIDC client secret")
    discovery_url_template: str = Field(
        default=(
            "https://{tenant}.b2clogin.com/{tenant}.onmicrosoft.com/{policy}"
            "/v2.0/.well-known/openid-configuration"
        ),
        description="Discovery document URL, formatted with tenant and policy",
    )
    timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")

    model_config = SettingsConfigDict(env_prefix="IDM_OIDC_", case_sensitive=False)

    def discovery_url(self, policy_name: str) -> str:
        """Discovery document URL for a policy."""
        return self.discovery_url_template.format(tenant=self.tenant, policy=policy_name)


class CookieSettings(BaseSettings):
    """Session cookie settings."""

    name: str = Field(default="idm", description="Session cookie name")
    secret: str = Field(..., min_length=32, description="Secret key for signing session cookies")
    ttl_ms: int = Field(
        default=24 * 60 * 60 * 1000,
        ge=60 * 1000,
        description="Session cookie and session cache lifetime in milliseconds",
    )
    is_secure: bool = Field(default=True, description="Only send the cookie over HTTPS")

    model_config = SettingsConfigDict(env_prefix="IDM_COOKIE_", case_sensitive=False)


class CacheSettings(BaseSettings):
    """Cache segment settings."""

    segment: str = Field(default="idm", description="Cache segment prefix")
    encryption_key: str = Field(
        ...,
        min_length=64,
        max_length=64,
        description="64-character hex string (32 bytes) for AES-256 encryption",
    )
    state_ttl_ms: int = Field(
        default=60 * 60 * 1000,
        ge=60 * 1000,
        description="Lifetime of per-attempt request state in milliseconds",
    )

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key(cls, v: str) -> str:
        """Validate that the encryption key is a valid 64-character hex string."""
        try:
            bytes.fromhex(v)
        except ValueError:
            raise ValueError("Encryption key must be a valid hexadecimal string")

        return v

    model_config = SettingsConfigDict(env_prefix="IDM_CACHE_", case_sensitive=False)


class CORSSettings(BaseSettings):
    """CORS configuration settings."""

    # Read from the environment as a comma-separated string, not JSON
    origins: Annotated[List[str], NoDecode] = Field(
        default=["http://localhost:3000"], description="Allowed CORS origins"
    )
    allow_credentials: bool = Field(default=True, description="Allow credentials in CORS requests")

    @field_validator("origins", mode="before")
    @classmethod
    def parse_origins(cls, v):
        """Parse comma-separated origins string into list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    model_config = SettingsConfigDict(env_prefix="CORS_", case_sensitive=False)


class AppSettings(BaseSettings):
    """Main application settings that aggregates all configuration."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    app_name: str = Field(default="IDM Session Service", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    host: str = Field(default="0.0.0.0", description="Interface the server binds to")
    port: int = Field(default=8000, ge=1, le=65535, description="Application port")

    database: DatabaseSettings
    identity: IdentitySettings
    oidc: OidcSettings
    cookie: CookieSettings
    cache: CacheSettings
    cors: CORSSettings

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed_levels:
            raise ValueError(f"Log level must be one of {allowed_levels}, got '{v}'")
        return v_upper


# Global settings instance
_settings: AppSettings | None = None


def get_settings() -> AppSettings:
    """
    Get the global settings instance.

    Settings are loaded once from the environment and reused across the
    application.

    Raises:
        ValidationError: If required environment variables are missing or invalid
    """
    global _settings
    if _settings is None:
        _settings = AppSettings(
            database=DatabaseSettings(),
            identity=IdentitySettings(),
            oidc=OidcSettings(),
            cookie=CookieSettings(),
            cache=CacheSettings(),
            cors=CORSSettings(),
        )
    return _settings


def reset_settings() -> None:
    """
    Reset the global settings instance.

    Used by tests to reload settings with different environment variables.
    """
    global _settings
    _settings = None
