"""Centralized configuration via Pydantic BaseSettings.

Each concern has its own settings class with an env_prefix.
Settings are only loaded when a client or entrypoint calls ``from_env()``.
"""

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

from contractor.errors import ConfigError


def _read_secret(path: str | Path, default: str = "") -> str:
    """Read a secret from a file, returning default if missing."""
    p = Path(path)
    if p.exists():
        return p.read_text().strip()
    return default


class GiteaSettings(BaseSettings):
    """Gitea API connection settings."""

    url: str = ""
    token: str = ""

    # File path for secret loading (explicit path, used when GITEA_TOKEN is empty)
    token_file: str = "/secrets/gitea-token"

    timeout: float = 30.0
    max_retries: int = 3
    retry_backoff: float = 0.5
    page_size: int = 50

    model_config = {"env_prefix": "GITEA_"}

    @model_validator(mode="after")
    def _load_file_secrets(self) -> "GiteaSettings":
        """Load the token from a file if the direct value is empty."""
        if not self.token:
            self.token = _read_secret(self.token_file)
        self.url = self.url.rstrip("/")
        return self

    def require(self) -> "GiteaSettings":
        """Fail early when the connection cannot be made."""
        if not self.url:
            raise ConfigError("GITEA_URL should be set")
        if not self.token:
            raise ConfigError("GITEA_TOKEN (or GITEA_TOKEN_FILE) should be set")
        return self


class ContractorSettings(BaseSettings):
    """Top-level contractor settings."""

    log_level: str = "INFO"
    log_buffer_size: int = 200

    # Reconciliation policy
    filter: str | None = None
    force_refresh: bool = False
    only_enabled: bool = False
    concurrency: int = Field(default=10, ge=1)
    config_path: str = "renovate.json"

    # Webhook target. The marker is what identifies our hooks on the host.
    public_url: str = "http://localhost:3000"
    webhook_marker: str = "/webhooks/gitea?type=contractor"
    webhook_secret: str = ""
    webhook_secret_file: str = "/secrets/contractor-webhook-secret"

    command_name: str = "contractor"

    model_config = {"env_prefix": "CONTRACTOR_"}

    @model_validator(mode="after")
    def _load_file_secrets(self) -> "ContractorSettings":
        if not self.webhook_secret:
            self.webhook_secret = _read_secret(self.webhook_secret_file)
        return self

    @property
    def webhook_url(self) -> str:
        """Target URL registered on every repository, embedding the marker."""
        return f"{self.public_url.rstrip('/')}{self.webhook_marker}"


class ServiceSettings(BaseSettings):
    """Bind address for ``contractor serve``."""

    host: str = "127.0.0.1"
    port: int = 3000

    model_config = {"env_prefix": "SERVICE_"}
