"""Application settings and configuration.

Settings are loaded from environment variables (or an ``.env`` file) with
defaults suitable for local development against SQLite.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the community ledger services.

    The batching limits describe the backing store: ``storage_batch_limit`` is
    the hard ceiling a single batched write may carry, ``backfill_chunk_size``
    is how many memberships backfill puts into one batch.
    """

    # Application metadata
    app_name: str = Field(default="Community Ledger", alias="APP_NAME")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./community_ledger.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Batched write limits
    storage_batch_limit: int = Field(default=500, alias="STORAGE_BATCH_LIMIT")
    backfill_chunk_size: int = Field(default=450, alias="BACKFILL_CHUNK_SIZE")

    # Defaults used when a community is created on a creator's behalf
    community_name_template: str = Field(
        default="{display_name}'s Club",
        alias="COMMUNITY_NAME_TEMPLATE",
    )
    community_default_description: str = Field(
        default="Welcome to my community! Join rounds, chat, and grow together.",
        alias="COMMUNITY_DEFAULT_DESCRIPTION",
    )
    default_participant_level: str = Field(default="novice", alias="DEFAULT_PARTICIPANT_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        populate_by_name=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling such as Alembic."""
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url


settings = Settings()
