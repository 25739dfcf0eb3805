"""Configuration from CLI flags and environment. The URL is never logged unmasked."""

from urllib.parse import parse_qs, urlparse, urlunparse

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sync_schema.errors import ConfigError

POSTGRES_SCHEMES = ("postgres", "postgresql")


class Settings(BaseSettings):
    """Bootstrap settings. Init kwargs (CLI flags) win over env and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str | None = Field(
        default=None,
        description="Postgres connection URL, e.g. postgres://postgres:<password>@db.<project>.supabase.co:5432/postgres",
    )
    connect_timeout: float = Field(
        default=10.0, gt=0, le=300, description="Seconds to wait for the connection"
    )
    if_not_exists: bool = Field(
        default=False,
        description="Render existence guards and treat already-existing objects as non-fatal",
    )
    debug: bool = Field(default=False, description="Human-readable console logs")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, value: str | None) -> str | None:
        """Reject blank URLs, non-postgres schemes, bad ports and URLs without a host."""
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("connection URL must not be empty")
        parsed = urlparse(value)
        if parsed.scheme not in POSTGRES_SCHEMES:
            raise ValueError("connection URL must start with 'postgres://' or 'postgresql://'")
        try:
            parsed.port
        except ValueError as e:
            raise ValueError(f"connection URL has an invalid port: {e}") from e
        if not parsed.hostname and not parse_qs(parsed.query).get("host"):
            raise ValueError("connection URL must name a host")
        return value


def load_settings(**overrides: object) -> Settings:
    """
    Build Settings, dropping overrides that are None so env values still apply.

    Raises:
        ConfigError: if any value fails validation
    """
    kwargs = {k: v for k, v in overrides.items() if v is not None}
    try:
        return Settings(**kwargs)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "settings"
        raise ConfigError(f"{field}: {first['msg']}") from e


def require_database_url(settings: Settings) -> str:
    """Return the connection URL or raise ConfigError when none was supplied."""
    if not settings.database_url:
        raise ConfigError("a connection URL is required (pass --pg-url or set DATABASE_URL)")
    return settings.database_url


def mask_url(url: str) -> str:
    """Replace the password in a connection URL with '***' for logs and messages."""
    parsed = urlparse(url)
    if parsed.password is None:
        return url
    netloc = parsed.netloc.rsplit("@", 1)[-1]
    userinfo = f"{parsed.username}:***" if parsed.username else ":***"
    return urlunparse(parsed._replace(netloc=f"{userinfo}@{netloc}"))
