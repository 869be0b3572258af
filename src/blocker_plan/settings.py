import json
from pathlib import Path

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from blocker_plan.utils.paths import get_default_data_dir, get_default_log_dir


class Settings(BaseSettings):
    """Application-wide settings managed via .env and config.json."""

    app_name: str = "blocker_plan"
    debug: bool = Field(default=False, description="Master toggle for verbose logging")
    log_verdicts: bool = Field(default=True, description="Write block decisions to verdicts.log")

    # Paths
    data_dir: Path = Field(default_factory=get_default_data_dir)
    log_dir: Path = Field(default_factory=get_default_log_dir)

    def model_post_init(self, __context):
        # Ensure paths are absolute
        self.data_dir = self.data_dir.resolve()
        self.log_dir = self.log_dir.resolve()

    @property
    def plan_file(self) -> Path:
        return self.data_dir / "plans.json"

    @property
    def usage_file(self) -> Path:
        return self.data_dir / "usage.json"

    # Usage accounting
    usage_retention_days: int = Field(default=7, ge=1)
    assumed_session_minutes: int = Field(default=3, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="BLOCKER_PLAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def save(self):
        """Saves current settings to config.json in data_dir."""
        config_path = self.data_dir / "config.json"
        self.data_dir.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        with open(config_path, "w") as f:
            json.dump(data, f, indent=4)


def load_settings() -> Settings:
    """Loads settings, merging with config.json if it exists."""
    initial = Settings()
    config_path = initial.data_dir / "config.json"

    if not config_path.exists():
        return initial

    try:
        with open(config_path) as f:
            config_data = json.load(f)
        return Settings(**{**initial.model_dump(), **config_data})
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable config at {config_path}: {e}")
        return initial


# The single source of truth for the app
settings = load_settings()
