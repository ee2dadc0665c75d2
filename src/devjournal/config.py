"""Application configuration."""

from functools import lru_cache
from pathlib import Path

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from devjournal.logging import normalize_log_level


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    repo_url: str
    ssh_key_path: Path
    webhook_secret: SecretStr
    admin_secret: SecretStr
    admin_login_path: str = "/admin-login"

    content_dir: Path = Path("content")
    db_path: Path = Path("devjournal.db")
    tracked_refs: list[str] = ["refs/heads/main", "refs/heads/master"]

    strict_host_key_checking: bool = True
    known_hosts_path: Path | None = None
    git_binary: str = "git"

    app_title: str = "Dev Journal"
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8080

    theme_logo_url: str = "/static/img/logo.svg"
    theme_primary_color: str = "#3498db"
    theme_font_sans: str = "Inter"

    model_config = SettingsConfigDict(
        env_prefix="DEVJOURNAL_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @field_validator("repo_url", "ssh_key_path", "webhook_secret", "admin_secret", mode="before")
    @classmethod
    def _require_value(cls, value):
        if isinstance(value, str) and not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("admin_login_path")
    @classmethod
    def _absolute_login_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("must start with '/'")
        if value.startswith("/admin/"):
            raise ValueError("must live outside the protected /admin/ prefix")
        return value

    @field_validator("log_level")
    @classmethod
    def _valid_log_level(cls, value: str) -> str:
        level = normalize_log_level(value)
        if level is None:
            raise ValueError(f"unknown log level: {value!r}")
        return level

    @property
    def theme(self) -> dict[str, str]:
        """Theme values handed to every template."""
        return {
            "logo_url": self.theme_logo_url,
            "primary_color": self.theme_primary_color,
            "font_sans": self.theme_font_sans,
        }


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process. Raises ValidationError when incomplete."""
    return Settings()
