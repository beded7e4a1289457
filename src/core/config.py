"""
Application settings management.

Settings are loaded from environment variables with .env file support.
All configuration is validated using Pydantic.
"""

from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

DEFAULT_ALLOWED_MEDIA_TYPES = [
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "video/mp4",
    "video/webm",
    "video/quicktime",
    "audio/mpeg",
    "audio/wav",
    "audio/webm",
    "audio/ogg",
]


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    config_dir: Path = Field(
        default=PROJECT_ROOT / "config",
        description="Directory containing YAML configuration (experiments/ lives here)",
    )

    # ==========================================================================
    # Database
    # ==========================================================================

    database_path: Path = Field(
        default=Path("data/participation.db"),
        description="Path to SQLite database file",
    )
    database_busy_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds a connection waits on a locked database before failing",
    )

    # ==========================================================================
    # Visitor Numbering
    # ==========================================================================

    allocator_timeout: float = Field(
        default=0.5,
        gt=0,
        le=5,
        description="Timeout for one visitor-number allocation (seconds)",
    )
    allocator_sequence_name: str = Field(
        default="visitor_counter", description="Row name of the visitor sequence"
    )

    # ==========================================================================
    # Experience
    # ==========================================================================

    active_experiment_id: Optional[str] = Field(
        default=None,
        description="Experiment served by /experiments/active (first active if unset)",
    )
    branching_fallback_path: str = Field(
        default="default",
        description="Path returned when no branching rule matches",
    )

    # ==========================================================================
    # File Storage
    # ==========================================================================

    upload_dir: Path = Field(
        default=Path("uploads"), description="Directory for locally stored media"
    )
    max_upload_bytes: int = Field(
        default=50 * 1024 * 1024, ge=1, description="Maximum accepted upload size"
    )
    allowed_media_types: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_MEDIA_TYPES),
        description="MIME types accepted for audio/photo/video answers",
    )
    storage_timeout: float = Field(
        default=30.0, gt=0, description="Timeout for one file store call (seconds)"
    )

    # ==========================================================================
    # Customer Profiles (Klaviyo)
    # ==========================================================================

    klaviyo_api_key: Optional[str] = Field(
        default=None, description="Klaviyo private API key"
    )
    klaviyo_list_id: Optional[str] = Field(
        default=None, description="Klaviyo list receiving participant profiles"
    )
    klaviyo_max_retries: int = Field(
        default=3, ge=0, le=10, description="Retries for profile sync"
    )
    klaviyo_timeout: float = Field(
        default=10.0, gt=0, description="HTTP timeout for Klaviyo calls (seconds)"
    )

    # ==========================================================================
    # Server Configuration
    # ==========================================================================

    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")


# Global settings instance
settings = Settings()
