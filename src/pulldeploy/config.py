"""Configuration management for pulldeploy.

Two layers:

* ``Settings``: daemon knobs read from ``PULLDEPLOY_*`` environment variables
  (or a ``.env`` file).
* ``DeployConfig``: the deployment file describing the watched repository and
  the services built from it, stored as JSON at ``Settings.config_path``.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, ValidationError, field_serializer
from pydantic_settings import BaseSettings, SettingsConfigDict

from pulldeploy.constants import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_PULL_DIR,
    DEFAULT_UNIT_DIR,
    HTTP_TIMEOUT_SECONDS,
    POLL_INTERVAL_SECONDS,
)
from pulldeploy.errors import ConfigError
from pulldeploy.models import RepositoryRef


class Settings(BaseSettings):
    """Daemon settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PULLDEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    config_path: str = Field(
        default=DEFAULT_CONFIG_PATH, description="Path to the deployment config file"
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")
    log_to_file: bool = Field(default=False, description="Also write logs to a rotating file")
    log_directory: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(default=10 * 1024 * 1024, description="Rotate after N bytes")
    log_file_backup_count: int = Field(default=5, description="Rotated log files to keep")

    # Commit watcher
    poll_interval_seconds: float = Field(
        default=POLL_INTERVAL_SECONDS, gt=0, description="Seconds between commit polls"
    )
    http_timeout_seconds: float = Field(
        default=HTTP_TIMEOUT_SECONDS, gt=0, description="Timeout for repository host requests"
    )
    github_api_url: str = Field(
        default="https://api.github.com", description="Base URL of the repository host API"
    )
    github_web_url: str = Field(
        default="https://github.com", description="Base URL repositories are cloned from"
    )
    advance_on_failure: bool = Field(
        default=True,
        description=(
            "Record a commit as processed even when its pipeline run hits a hard failure. "
            "When false the commit is retried on the next poll."
        ),
    )

    # External tools
    git_binary: str = Field(default="git", description="git executable")
    systemctl_binary: str = Field(default="systemctl", description="systemctl executable")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def log_file_path(self) -> str:
        return str(Path(self.log_directory) / "pulldeploy.log")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# ---------------------------------------------------------------------------
# Deployment config file
# ---------------------------------------------------------------------------


class ServiceConfig(BaseModel):
    """One deployable service built from the watched repository."""

    name: str = Field(default="service-name", min_length=1)
    svc_filename: str = Field(default="service-filename.service", min_length=1)
    build_dir: str = Field(default="/var/www/my_service", min_length=1)
    custom_dir: str | None = None
    svc_file_contents: list[str] = Field(
        default_factory=lambda: ["[Unit]", "Description=Your desc"]
    )


class DeployConfig(BaseModel):
    """The deployment configuration file."""

    repository: str = "https://github.com/your-repository/link"
    branch: str = Field(default="main", min_length=1)
    token: SecretStr = SecretStr("YOUR-GITHUB-TOKEN-HERE")
    pull_dir: str = DEFAULT_PULL_DIR
    sys_svc_dir: str = DEFAULT_UNIT_DIR
    services: list[ServiceConfig] = Field(default_factory=lambda: [ServiceConfig()])

    @field_serializer("token", when_used="json")
    def _dump_token(self, token: SecretStr) -> str:
        return token.get_secret_value()

    def repository_ref(self, settings: Settings | None = None) -> RepositoryRef:
        settings = settings or get_settings()
        return RepositoryRef.parse(
            self.repository,
            self.branch,
            api_url=settings.github_api_url,
            web_url=settings.github_web_url,
        )


def load_deploy_config(path: str | Path) -> DeployConfig:
    """Read and validate the deployment config file.

    Raises:
        ConfigError: if the file is missing, is not JSON or fails validation.
    """
    config_path = Path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(
            f"Config file {config_path} not found; create one with `pulldeploy init-config`"
        ) from None
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {config_path}: {exc}") from exc

    try:
        return DeployConfig.model_validate_json(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config file {config_path}: {exc}") from exc


def write_default_config(path: str | Path, force: bool = False) -> Path:
    """Write the example deployment config to *path*.

    Refuses to overwrite an existing file unless *force* is set.
    """
    config_path = Path(path)
    if config_path.exists() and not force:
        raise ConfigError(f"Config file {config_path} already exists (use --force to overwrite)")
    config_path.parent.mkdir(parents=True, exist_ok=True)
    payload = DeployConfig().model_dump(mode="json")
    config_path.write_text(json.dumps(payload, indent=4) + "\n", encoding="utf-8")
    return config_path
