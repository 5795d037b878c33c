# ==============================================================================
# Application Configuration
# ==============================================================================
"""
Configuration management using pydantic-settings.

All configuration is loaded from environment variables, with support for
.env files via python-dotenv.
"""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from siteanalytics.core.constants import MAX_BATCH_SIZE

# Load .env file before any settings are instantiated
load_dotenv()


class StorageSettings(BaseSettings):
    """Backing store selection."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    backend: Literal["sqlite", "postgresql"] = Field(
        default="sqlite", description="Storage backend (sqlite, postgresql)"
    )


class SQLiteSettings(BaseSettings):
    """SQLite file settings for single-node deployments."""

    model_config = SettingsConfigDict(env_prefix="SQLITE_")

    path: str = Field(default="analytics.db", description="Database file path")


class PostgresSettings(BaseSettings):
    """PostgreSQL connection settings."""

    model_config = SettingsConfigDict(env_prefix="PG_")

    host: str = Field(default="localhost", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="postgres", description="PostgreSQL username")
    password: str = Field(default="postgres", description="PostgreSQL password")
    database: str = Field(default="analytics", description="Database name")
    schema_name: str = Field(default="analytics", description="Schema name")
    sslmode: str = Field(default="prefer", description="SSL mode")

    @property
    def connection_string(self) -> str:
        """Build PostgreSQL connection string."""
        return (
            f"postgresql://{self.user}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}?sslmode={self.sslmode}"
        )


class ExperimentSettings(BaseSettings):
    """Experiment assignment settings.

    The override prefix is the query-parameter prefix that forces a variant
    for QA (e.g. ?aa_variant_hero=b). The exposure event is the event name
    recorded the first time a context resolves an experiment.
    """

    model_config = SettingsConfigDict(env_prefix="EXPERIMENT_")

    override_prefix: str = Field(
        default="aa_variant_", description="Query parameter prefix for forced variants"
    )
    exposure_event: str = Field(
        default="$experiment_exposure", description="Event name for exposure tracking"
    )


class IngestSettings(BaseSettings):
    """Event ingestion settings."""

    model_config = SettingsConfigDict(env_prefix="INGEST_")

    max_batch_size: int = Field(
        default=MAX_BATCH_SIZE, description="Maximum number of events per batch request"
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    # Nested settings
    storage: StorageSettings = Field(default_factory=StorageSettings)
    sqlite: SQLiteSettings = Field(default_factory=SQLiteSettings)
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    experiment: ExperimentSettings = Field(default_factory=ExperimentSettings)
    ingest: IngestSettings = Field(default_factory=IngestSettings)

    # General settings
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    def describe_backend(self) -> str:
        """
        Human-readable location of the configured store.

        Returns:
            The SQLite file path, or host:port/database#schema for PostgreSQL
        """
        if self.storage.backend == "postgresql":
            pg = self.postgres
            return f"{pg.host}:{pg.port}/{pg.database}#{pg.schema_name}"
        return self.sqlite.path


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for subsequent calls.
    """
    return Settings()
