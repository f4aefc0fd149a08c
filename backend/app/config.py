from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Sky Talk API", description="Human readable service name")
    environment: str = Field(default="development", description="Deployment environment name")
    debug: bool = Field(default=False, description="Enable debug mode")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1",
            "http://127.0.0.1:3000",
        ],
        description="List of allowed CORS origins",
    )
    cors_allow_origin_regex: str | None = Field(
        default=r"^https?://(localhost|127\.0\.0\.1|\[::1\])(:\d+)?$",
        description="Optional regular expression that matches allowed CORS origins",
    )

    database_user: str = Field(default="skytalk", validation_alias="DB_USER")
    database_password: str = Field(default="skytalk", validation_alias="DB_PASSWORD")
    database_host: str = Field(default="db", validation_alias="DB_HOST")
    database_port: int = Field(default=3306, validation_alias="DB_PORT")
    database_name: str = Field(default="skytalk", validation_alias="DB_NAME")

    jwt_secret_key: str = Field(default="changeme", description="Secret used to sign access tokens")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=15)
    refresh_token_expire_minutes: int = Field(
        default=7 * 24 * 60, description="Lifetime of refresh tokens in minutes"
    )
    auth_cache_url: str | None = Field(
        default=None,
        description="Redis URL for refresh token storage; in-process cache when unset",
    )

    websocket_keepalive_timeout_seconds: float = Field(
        default=30, description="Idle receive timeout before the server pings a websocket"
    )
    websocket_keepalive_ping_interval_seconds: float = Field(
        default=25, description="Minimum interval between keepalive pings"
    )
    typing_indicator_ttl_seconds: float = Field(
        default=5.0,
        description="Silence after which a typing indicator is cleared; 0 disables the timer",
    )
    relay_store_timeout_seconds: float | None = Field(
        default=None,
        description="Timeout for message store calls made by the relay; unset waits indefinitely",
    )
    chat_message_max_length: int = Field(default=2000)
    conversation_history_limit: int = Field(
        default=100, description="Most recent messages returned per conversation fetch"
    )
    friend_search_limit: int = Field(default=20)

    media_root: Path = Field(default=Path("uploads"))
    media_base_url: str = Field(default="/api/chat/files")
    max_image_upload_size: int = Field(
        default=5 * 1024 * 1024, description="Maximum image upload size in bytes"
    )
    max_upload_size: int = Field(
        default=10 * 1024 * 1024, description="Maximum file upload size in bytes"
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def database_url(self) -> str:
        return (
            f"mysql+pymysql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("media_root", mode="before")
    @classmethod
    def resolve_media_root(cls, value: str | Path) -> Path:
        return Path(value).resolve()


@lru_cache
def get_settings() -> Settings:
    return Settings()
