"""Configuration management with YAML and environment variable support."""

from pathlib import Path
from typing import ClassVar, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads configuration from YAML file."""

    def get_field_value(self, field, field_name: str):
        # Not used with prepare method
        pass

    def prepare_field_value(self, field_name: str, field, value, value_is_complex: bool):
        return value

    def __call__(self):
        # Load from config.yaml in current directory
        yaml_path = Path("config.yaml")
        if not yaml_path.exists():
            return {}

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return data


class LedgerConfig(BaseModel):
    """Run ledger retention.

    max_runs caps how many finished runs are kept in memory; the oldest
    terminal runs are evicted first. None keeps every run for the process
    lifetime.
    """

    max_runs: Optional[int] = Field(default=100, ge=1)


class PipelineConfig(BaseModel):
    """Orchestrator execution limits."""

    step_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    run_timeout_seconds: Optional[float] = Field(default=None, gt=0)


class ScriptConfig(BaseModel):
    """Script generation model settings."""

    model: str = "ollama/llama3.1"
    endpoint: str = "http://localhost:11434"
    api_key: Optional[str] = None
    temperature: float = 0.7
    max_retries: int = 3
    scene_count: int = 5
    default_audience: str = "busy professionals curious about technology"


class RenderConfig(BaseModel):
    """ffmpeg rendering parameters."""

    ffmpeg_binary: str = "ffmpeg"
    width: int = 1280
    height: int = 720
    fps: int = 30
    seconds_per_scene: float = 5.0
    background_color: str = "0x101828"
    font_color: str = "white"
    font_size: int = 48
    timeout_seconds: float = 600.0


class PublishConfig(BaseModel):
    """Video platform upload settings.

    Either access_token or the refresh_token/client_id/client_secret triple
    must be set for uploads to authenticate.
    """

    api_base: str = "https://www.googleapis.com"
    token_url: str = "https://oauth2.googleapis.com/token"
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    refresh_token: Optional[str] = None
    access_token: Optional[str] = None
    privacy_status: str = "private"
    category_id: str = "28"
    watch_url_template: str = "https://www.youtube.com/watch?v={video_id}"
    max_attempts: int = 3
    timeout_seconds: float = 300.0


class StorageConfig(BaseModel):
    """Storage configuration."""

    tmp_dir: Path = Path("tmp")

    @field_validator("tmp_dir", mode="before")
    @classmethod
    def convert_tmp_dir_to_path(cls, v):
        """Convert string to Path object."""
        if isinstance(v, str):
            return Path(v)
        return v


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000


class CronConfig(BaseModel):
    """Scheduled trigger settings.

    When secret is set the cron hook requires "Authorization: Bearer <secret>".
    """

    secret: Optional[str] = None


class Settings(BaseSettings):
    """Main application settings with YAML and environment variable support.

    Configuration sources (in priority order):
    1. Environment variables (prefix: VIDCAST_, delimiter: __)
    2. .env file
    3. YAML file (config.yaml)
    4. Field defaults
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="VIDCAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ledger: LedgerConfig = LedgerConfig()
    pipeline: PipelineConfig = PipelineConfig()
    script: ScriptConfig = ScriptConfig()
    render: RenderConfig = RenderConfig()
    publish: PublishConfig = PublishConfig()
    storage: StorageConfig = StorageConfig()
    server: ServerConfig = ServerConfig()
    cron: CronConfig = CronConfig()
    log_level: str = "INFO"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ):
        """Customize settings sources to include YAML configuration.

        Priority order (highest to lowest):
        1. Environment variables
        2. .env file
        3. YAML file
        4. Init settings (programmatic defaults)
        """
        return (
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            init_settings,
        )


# Singleton instance
settings = Settings()
