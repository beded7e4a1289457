"""Tests for configuration module."""

import os
from pathlib import Path

import pytest


def test_settings_defaults():
    """Settings have sensible defaults."""
    from src.core.config import Settings

    # Create fresh settings (don't use global)
    s = Settings(_env_file=None)

    assert s.database_path == Path("data/participation.db")
    assert s.allocator_timeout == 0.5
    assert s.allocator_sequence_name == "visitor_counter"
    assert s.branching_fallback_path == "default"
    assert s.max_upload_bytes == 50 * 1024 * 1024
    assert "video/mp4" in s.allowed_media_types
    assert s.klaviyo_max_retries == 3
    assert (s.config_dir / "experiments" / "the_experiment.yaml").exists()


def test_settings_from_env():
    """Settings can be overridden via environment variables."""
    os.environ["ALLOCATOR_TIMEOUT"] = "1.5"
    os.environ["BRANCHING_FALLBACK_PATH"] = "main"

    try:
        from src.core.config import Settings

        s = Settings(_env_file=None)

        assert s.allocator_timeout == 1.5
        assert s.branching_fallback_path == "main"
    finally:
        del os.environ["ALLOCATOR_TIMEOUT"]
        del os.environ["BRANCHING_FALLBACK_PATH"]


def test_settings_validation():
    """Settings validate constraints."""
    from src.core.config import Settings
    from pydantic import ValidationError

    # Allocator timeout must stay short
    with pytest.raises(ValidationError):
        Settings(_env_file=None, allocator_timeout=30)

    with pytest.raises(ValidationError):
        Settings(_env_file=None, allocator_timeout=0)

    with pytest.raises(ValidationError):
        Settings(_env_file=None, port=70000)


def test_global_settings_available():
    """Global settings instance is importable."""
    from src.core.config import settings

    assert settings is not None
    assert hasattr(settings, "database_path")
