"""Configuration for backhub.

Two sources:

* ``Settings``: runtime knobs and credentials from the environment (and an
  optional ``.env`` file in the working directory).
* ``BackupConfig``: the list of repositories to mirror, read from a YAML
  file or given directly as ``github.com/<owner>/<name>``.

Example YAML:

    repos:
      - github.com/tanq16/backhub
      - github.com/org/private-repo
"""

import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_FILE = ".backhub.yaml"

DIRECT_REPO_PATTERN = re.compile(r"^github\.com/[^/]+/[^/]+$")


class ConfigError(Exception):
    """Raised when the backup configuration cannot be loaded."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BACKHUB_",
        extra="ignore",
        populate_by_name=True,
    )

    gh_token: str = Field(
        default="",
        validation_alias="GH_TOKEN",
        description="GitHub token used as the HTTP basic-auth password for private repos",
    )

    concurrency: int = Field(default=5, ge=1, description="Number of backup workers")
    max_stream_lines: int = Field(
        default=15,
        ge=1,
        description="Log lines kept per task unless unlimited output is enabled",
    )
    update_interval: float = Field(
        default=0.2,
        gt=0,
        description="Seconds between live display refreshes",
    )
    clone_folder: str = Field(
        default=".",
        description="Directory holding the <name>.git mirrors",
    )

    log_level: str = Field(default="WARNING", description="Python logging level")
    log_file: str = Field(
        default="",
        description="Write logs to this file instead of stderr",
    )

    @property
    def clone_path(self) -> Path:
        return Path(self.clone_folder).expanduser()


class BackupConfig(BaseModel):
    """Repositories to back up."""

    repos: list[str] = Field(default_factory=list)

    @field_validator("repos")
    @classmethod
    def strip_entries(cls, repos: list[str]) -> list[str]:
        cleaned = [repo.strip().rstrip("/") for repo in repos if repo and repo.strip()]
        # First occurrence wins; order is kept
        return list(dict.fromkeys(cleaned))


def is_direct_repo(value: str) -> bool:
    """Check if value is a direct ``github.com/<owner>/<name>`` identifier."""
    return bool(DIRECT_REPO_PATTERN.match(value))


def load_config(path: str | Path) -> BackupConfig:
    """Load the backup configuration.

    Args:
        path: YAML config file, or a direct repository identifier

    Returns:
        The parsed configuration

    Raises:
        ConfigError: If the file is missing, unreadable or malformed
    """
    if is_direct_repo(str(path)):
        return BackupConfig(repos=[str(path)])

    config_path = Path(path).expanduser()
    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"reading config file: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"parsing config: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"parsing config: expected a mapping in {config_path}")

    try:
        return BackupConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"parsing config: {e}") from e


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset cached settings (useful for testing)."""
    global _settings
    _settings = None
