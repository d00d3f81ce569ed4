"""Application settings with environment variable support."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator
from pathlib import Path
import ssl


VERSION = "0.4.0"

# Compute config_dir at module level
_CONFIG_DIR = Path.home() / ".config" / "skimmer"

TLS_VERSIONS = {
    "TLS 1.0": ssl.TLSVersion.TLSv1,
    "TLS 1.1": ssl.TLSVersion.TLSv1_1,
    "TLS 1.2": ssl.TLSVersion.TLSv1_2,
    "TLS 1.3": ssl.TLSVersion.TLSv1_3,
}

ORDERINGS = ("asc", "desc")


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SKIMMER_",  # SKIMMER_CONFIG_PATH, SKIMMER_AUTO_READ, etc.
    )

    # Paths
    config_dir: Path = _CONFIG_DIR
    config_path: Path = _CONFIG_DIR / "config.yml"
    database_path: Path = _CONFIG_DIR / "skimmer.db"

    # View defaults
    ordering: str = "asc"
    show_read: bool = False
    show_favourites: bool = False
    auto_read: bool = False
    default_include_feed_name: bool = False

    # Refresh policy (minutes, 0 disables periodic refresh)
    refresh_interval_minutes: int = 0

    # Ingestion
    fetch_timeout_seconds: int = 30
    fetch_max_retries: int = 3
    min_tls_version: str = "TLS 1.2"
    user_agent: str = f"skimmer/{VERSION}"
    enable_reader_fallback: bool = False

    @field_validator("ordering")
    @classmethod
    def _check_ordering(cls, value: str) -> str:
        value = value.lower()
        if value not in ORDERINGS:
            raise ValueError(f"ordering must be one of {', '.join(ORDERINGS)}")
        return value

    @field_validator("min_tls_version")
    @classmethod
    def _check_tls(cls, value: str) -> str:
        if value not in TLS_VERSIONS:
            raise ValueError(f"unsupported TLS version: {value}")
        return value

    @model_validator(mode="after")
    def _non_negative_interval(self):
        if self.refresh_interval_minutes < 0:
            self.refresh_interval_minutes = 0
        return self

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.database_path}"


settings = Settings()
