"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the credential store and
the environment checker share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

load_dotenv(".env", override=False)


class SpotifySettings(BaseSettings):
    """Credentials and endpoints for the Spotify Web API."""

    model_config = SettingsConfigDict(extra="ignore")

    client_id: str = Field(..., validation_alias="SPOTIFY_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="SPOTIFY_CLIENT_SECRET")
    redirect_uri: Optional[AnyHttpUrl] = Field(
        None,
        validation_alias="SPOTIFY_REDIRECT_URI",
        description="Callback URL registered with Spotify. Derived from the request when omitted.",
    )
    refresh_token: Optional[str] = Field(
        None,
        validation_alias="SPOTIFY_REFRESH_TOKEN",
        description="Static refresh token enabling the single-user widget.",
    )
    accounts_base_url: str = Field(
        "https://accounts.spotify.com", validation_alias="SPOTIFY_ACCOUNTS_BASE_URL"
    )
    api_base_url: str = Field(
        "https://api.spotify.com/v1", validation_alias="SPOTIFY_API_BASE_URL"
    )


class StoreSettings(BaseSettings):
    """Location and retention policy of the credential store."""

    model_config = SettingsConfigDict(extra="ignore")

    url: str = Field(
        "sqlite:///./data/credentials.db",
        validation_alias=AliasChoices("CREDENTIAL_STORE_URL", "REDIS_URL"),
    )
    key_prefix: str = Field("spotify:user:", validation_alias="CREDENTIAL_KEY_PREFIX")
    ttl_seconds: Optional[int] = Field(
        None,
        validation_alias="CREDENTIAL_TTL_SECONDS",
        description="Expire credential records after this many idle seconds.",
    )
    socket_timeout_seconds: float = Field(5.0, validation_alias="STORE_SOCKET_TIMEOUT")


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )


class OAuthSettings(BaseSettings):
    """OAuth flow configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    state_secret: Optional[str] = Field(None, validation_alias="OAUTH_STATE_SECRET")
    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    require_state: bool = Field(False, validation_alias="OAUTH_REQUIRE_STATE")
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        (
            "user-read-currently-playing",
            "user-read-playback-state",
            "user-read-recently-played",
            "user-top-read",
        ),
        validation_alias="OAUTH_SCOPES",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope.strip() for scope in value.split(",") if scope.strip())


class HTTPSettings(BaseSettings):
    """Timeouts and retry policy for outbound calls."""

    model_config = SettingsConfigDict(extra="ignore")

    timeout_seconds: float = Field(10.0, validation_alias="HTTP_TIMEOUT_SECONDS")
    image_timeout_seconds: float = Field(5.0, validation_alias="IMAGE_TIMEOUT_SECONDS")
    image_max_bytes: int = Field(512 * 1024, ge=1, validation_alias="IMAGE_MAX_BYTES")
    retry_attempts: int = Field(2, ge=1, validation_alias="HTTP_RETRY_ATTEMPTS")
    retry_backoff_seconds: float = Field(
        0.5, ge=0, validation_alias="HTTP_RETRY_BACKOFF_SECONDS"
    )


class WidgetSettings(BaseSettings):
    """Widget rendering bounds."""

    model_config = SettingsConfigDict(extra="ignore")

    timeout_seconds: float = Field(25.0, validation_alias="WIDGET_TIMEOUT_SECONDS")
    cache_seconds: int = Field(30, ge=0, validation_alias="WIDGET_CACHE_SECONDS")
    top_items_limit: int = Field(5, ge=1, le=50, validation_alias="TOP_ITEMS_LIMIT")
    top_items_time_range: str = Field(
        "short_term", validation_alias="TOP_ITEMS_TIME_RANGE"
    )
    last_known_entries: int = Field(512, ge=0, validation_alias="WIDGET_LAST_KNOWN_ENTRIES")


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(extra="ignore")

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    public_base_url: Optional[AnyHttpUrl] = Field(
        None,
        validation_alias="PUBLIC_BASE_URL",
        description="Public URL of this service, used in widget and login links.",
    )
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    http: HTTPSettings = Field(default_factory=HTTPSettings)
    widget: WidgetSettings = Field(default_factory=WidgetSettings)

    @classmethod
    def from_env_file(cls, env_file: Path) -> "AppSettings":
        """Build settings from ``env_file`` layered under the process environment.

        Exported variables take precedence over the file, and ``os.environ`` is
        not modified.
        """
        return cls(  # type: ignore[call-arg]
            _env_file=env_file,
            spotify=SpotifySettings(_env_file=env_file),  # type: ignore[call-arg]
            store=StoreSettings(_env_file=env_file),
            security=SecuritySettings(_env_file=env_file),
            oauth=OAuthSettings(_env_file=env_file),
            http=HTTPSettings(_env_file=env_file),
            widget=WidgetSettings(_env_file=env_file),
        )


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "HTTPSettings",
    "OAuthSettings",
    "SecuritySettings",
    "SpotifySettings",
    "StoreSettings",
    "WidgetSettings",
    "get_settings",
]
