from typing import Literal

from fastapi import Depends
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Story Jobs", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment")
    debug: bool = Field(default=True, description="Debug mode")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    workers: int = Field(default=1, description="Number of workers")
    public_base_url: str = Field(
        default="http://localhost:8000",
        description="Externally visible base URL used to build polling URLs",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./storyjobs.db",
        description="Database connection URL",
    )
    db_pool_size: int = Field(default=10, description="Database connection pool size")
    db_max_overflow: int = Field(default=20, description="Database max overflow connections")
    db_pool_timeout: int = Field(default=30, description="Database pool timeout in seconds")
    db_pool_recycle: int = Field(default=3600, description="Database connection recycle time in seconds")

    # Job processing
    job_sweep_interval_ms: int = Field(
        default=30000, ge=1000, description="Delay between worker sweeps"
    )
    job_sweep_batch_size: int = Field(
        default=5, ge=1, description="Maximum jobs claimed per sweep"
    )
    heartbeat_interval_s: int = Field(
        default=30, ge=1, description="Heartbeat interval for claimed jobs"
    )
    stale_processing_timeout_s: int = Field(
        default=900,
        ge=30,
        description="Processing jobs without a heartbeat for this long are recovered",
    )
    stale_check_interval_s: int = Field(
        default=300, ge=1, description="Interval of the stale claim recovery loop"
    )
    terminal_cache_max_age_s: int = Field(
        default=3600, ge=0, description="Cache max-age for terminal job status"
    )

    def model_post_init(self, __context) -> None:
        """Validate settings after initialization."""
        if self.environment == "production":
            if self.debug:
                raise ValueError(
                    "DEBUG=true is not allowed in production environment."
                )
            if self.database_url.startswith("sqlite"):
                raise ValueError(
                    "SQLite DATABASE_URL is not allowed in production environment. "
                    "Point DATABASE_URL at the Postgres job store."
                )

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Dependency injection function for settings."""
    return settings


# Convenience type alias for dependency injection
SettingsDep = Depends(get_settings)
