"""Application settings using Pydantic."""
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///applytrack.db",
        description="SQLAlchemy database URL",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Root log level",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional path for the rotating log file",
    )

    # Mail server defaults (per-account values override these)
    imap_host: str = Field(
        default="imap.gmail.com",
        description="Default IMAP host for new email accounts",
    )
    imap_port: int = Field(
        default=993,
        description="Default IMAP port",
    )
    imap_use_tls: bool = Field(
        default=True,
        description="Connect to the IMAP server over TLS",
    )
    search_timeframe_days: int = Field(
        default=90,
        ge=1,
        le=365,
        description="Lookback window when an account has no previous import",
    )
    search_folders: list[str] = Field(
        default=["INBOX"],
        description="Folders searched when an account lists none",
    )
    search_batch_size: int = Field(
        default=25,
        ge=1,
        description="Messages fetched per IMAP FETCH round trip",
    )

    # Enrichment worker
    enrichment_standard_delay_seconds: float = Field(
        default=0.7,
        description="Delay before each fetch while requests are succeeding",
    )
    linkedin_standard_delay_seconds: float = Field(
        default=12.0,
        description="Standard delay for linkedin.com targets",
    )
    enrichment_backoff_delay_seconds: float = Field(
        default=60.0,
        description="Base delay for exponential backoff after rate limiting",
    )
    enrichment_max_consecutive_failures: int = Field(
        default=3,
        ge=1,
        description="Rate-limit failures in a row before a pass stops",
    )
    enrichment_request_timeout_seconds: float = Field(
        default=15.0,
        description="Total timeout for a single enrichment request",
    )
    enrichment_max_redirects: int = Field(
        default=5,
        description="Maximum redirects followed per enrichment request",
    )
    enrichment_replace_placeholder_title: bool = Field(
        default=False,
        description="Let enrichment replace a 'Position at {company}' placeholder title",
    )

    # Background job registry
    job_retention_minutes: int = Field(
        default=60,
        description="Age after which finished jobs may be cleaned up",
    )
    job_cleanup_interval_minutes: int = Field(
        default=15,
        description="How often the job registry cleanup runs (minutes)",
    )
    job_cleanup_threshold: int = Field(
        default=100,
        description="Cleanup only runs when more jobs than this are registered",
    )

    # Scheduler
    email_check_interval_minutes: int = Field(
        default=15,
        description="How often auto-import accounts are synced (minutes)",
    )

    # Record defaults
    default_location_type: str = Field(
        default="Remote",
        description="Location type for records created from email",
    )
    default_employment_type: str = Field(
        default="Full-time",
        description="Employment type for records created from email",
    )
    default_wage_type: str = Field(
        default="Yearly",
        description="Wage type when none can be detected",
    )

    # Paths
    config_dir: Path = Field(
        default=Path(__file__).parent,
        description="Configuration directory",
    )

    @property
    def project_root(self) -> Path:
        """Project root directory."""
        return self.config_dir.parent


# Global settings instance
settings = Settings()
