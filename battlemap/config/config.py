"""Configuration management."""

import os
from pathlib import Path

from dotenv import dotenv_values
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env for local/dev environments only where values are missing from the environment
BASE_DIR = Path(__file__).resolve().parent.parent.parent
env_file = BASE_DIR / ".env"

if env_file.exists():
    file_env = dotenv_values(env_file)
    missing_keys = {k: v for k, v in file_env.items() if k not in os.environ and v is not None}
    for k, v in missing_keys.items():
        os.environ[k] = v


class Settings(BaseSettings):
    """Application settings pulled from environment variables."""

    model_config = SettingsConfigDict(env_prefix="BATTLEMAP_", extra="ignore")

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Generation bounds
    min_map_dimension: int = Field(default=10, description="Minimum map width/height in tiles")
    max_map_dimension: int = Field(default=200, description="Maximum map width/height in tiles")
    default_cell_size: int = Field(default=5, description="Feet per tile")
    max_cell_size: int = Field(default=200, description="Maximum feet per tile")
    default_seed: int = Field(default=42, description="Seed used when none is supplied")

    # Warning thresholds
    large_area_warning_tiles: int = Field(
        default=10000, description="Warn when width * height exceeds this many tiles"
    )
    extreme_aspect_ratio: float = Field(
        default=4.0, description="Warn when the long side exceeds the short side by this factor"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")


settings = Settings()
