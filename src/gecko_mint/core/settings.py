"""Application settings and configuration.

This module defines all configuration options for the Gecko Mint service.
Settings are loaded from environment variables with sensible defaults and are
read once at startup; the resulting values are treated as immutable for the
lifetime of the process.
"""

from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or a `.env` file.
    """

    # Application metadata
    app_name: str = Field(default="Gecko Mint", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./gecko_mint.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Discord (notifier side; the gateway itself is handled by the event relay)
    discord_bot_token: SecretStr | None = Field(default=None, alias="DISCORD_BOT_TOKEN")
    discord_guild_id: str | None = Field(default=None, alias="DISCORD_GUILD_ID")
    discord_api_base_url: str = Field(
        default="https://discord.com/api/v10",
        alias="DISCORD_API_BASE_URL",
    )
    discord_http_timeout_seconds: float = Field(
        default=10.0,
        alias="DISCORD_HTTP_TIMEOUT_SECONDS",
    )

    # Event relay authentication
    event_shared_secret: SecretStr | None = Field(default=None, alias="EVENT_SHARED_SECRET")
    event_audience: str = Field(default="gecko-mint", alias="EVENT_AUDIENCE")
    event_jwt_algorithm: str = Field(default="HS256", alias="EVENT_JWT_ALGORITHM")

    # Arweave publishing
    arweave_base_url: str = Field(default="https://arweave.net", alias="ARWEAVE_BASE_URL")
    arweave_keypair_path: Path = Field(
        default=Path("./keys/arweave-keyfile.json"),
        alias="ARWEAVE_KEYPAIR_PATH",
    )
    arweave_reward_multiplier: float = Field(default=1.5, alias="ARWEAVE_REWARD_MULTIPLIER")
    arweave_http_timeout_seconds: float = Field(
        default=30.0,
        alias="ARWEAVE_HTTP_TIMEOUT_SECONDS",
    )

    # Artifact generation
    assets_dir: Path = Field(default=Path("./assets"), alias="ASSETS_DIR")
    generated_dir: Path = Field(default=Path("./generated"), alias="GENERATED_DIR")
    generator_config_path: Path = Field(
        default=Path("./assets/config.json"),
        alias="GENERATOR_CONFIG_PATH",
    )
    generator: str | None = Field(default=None, alias="GENERATOR")
    generation_timeout_seconds: float = Field(
        default=300.0,
        alias="GENERATION_TIMEOUT_SECONDS",
    )

    # Issuance worker pool
    issuance_workers: int = Field(default=4, ge=1, alias="ISSUANCE_WORKERS")
    issuance_queue_capacity: int = Field(default=100, ge=1, alias="ISSUANCE_QUEUE_CAPACITY")

    notification_message: str = Field(
        default="Your NFT is ready!",
        alias="NOTIFICATION_MESSAGE",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations and the ledger store.
        """
        url = self.database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def arweave_gateway_url(self) -> str:
        """Base URL used to build public links to published transactions."""
        return self.arweave_base_url.rstrip("/")
