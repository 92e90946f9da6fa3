from functools import lru_cache
from pathlib import Path
import logging

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36"
)


class IngestSettings(BaseSettings):
    """Ingestion settings loaded from environment variables.

    Validates configuration at construction to catch misconfiguration early.
    """

    cache_dir: str = "./data"
    cache_file_name: str = "playlist_cache.m3u"

    playlist_url: str | None = None
    backend_base_url: str | None = None
    device_id: str | None = None

    playlist_connect_timeout_sec: float = 30.0
    playlist_read_timeout_sec: float = 120.0
    epg_connect_timeout_sec: float = 15.0
    epg_read_timeout_sec: float = 30.0

    download_chunk_size: int = 32768
    partial_snapshot_every: int = 500  # Channels between partial snapshots
    progress_step_bytes: int = 102400  # Bytes between progress events

    fetch_max_retries: int = 3
    fetch_backoff_factor: float = 2.0

    user_agent: str = DEFAULT_USER_AGENT

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("playlist_url", "backend_base_url", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        """Treat empty strings from the environment as unset."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("playlist_url", "backend_base_url")
    @classmethod
    def validate_http_url(cls, value: str | None, info) -> str | None:
        """Validate URLs are HTTP/HTTPS."""
        if value is None:
            return value
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"{info.field_name} must be HTTP/HTTPS: {value}")
        return value.strip()

    @field_validator("cache_file_name")
    @classmethod
    def validate_cache_file_name(cls, value: str) -> str:
        """Cache file must be a bare file name inside cache_dir."""
        if not value or Path(value).name != value:
            raise ValueError(f"cache_file_name must be a plain file name: '{value}'")
        return value

    @field_validator(
        "playlist_connect_timeout_sec",
        "playlist_read_timeout_sec",
        "epg_connect_timeout_sec",
        "epg_read_timeout_sec",
    )
    @classmethod
    def validate_timeouts(cls, value: float, info) -> float:
        """Ensure timeouts are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("download_chunk_size", "partial_snapshot_every", "progress_step_bytes")
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        """Ensure sizes are positive integers."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("fetch_max_retries")
    @classmethod
    def validate_retries(cls, value: int) -> int:
        """At least one attempt is always made."""
        if value < 1:
            raise ValueError("fetch_max_retries must be >= 1")
        return value

    @field_validator("fetch_backoff_factor")
    @classmethod
    def validate_backoff(cls, value: float) -> float:
        if value < 0:
            raise ValueError("fetch_backoff_factor must be >= 0")
        return value

    @model_validator(mode="after")
    def validate_timeout_ordering(self):
        """EPG is supplementary, so its read timeout must not exceed the playlist's."""
        if self.epg_read_timeout_sec > self.playlist_read_timeout_sec:
            raise ValueError(
                "epg_read_timeout_sec must be <= playlist_read_timeout_sec"
            )

        if not self.playlist_url and not (self.backend_base_url and self.device_id):
            logger.warning(
                "No playlist source configured - network loads need an explicit URL"
            )

        return self

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir) / self.cache_file_name

    def log_summary(self) -> None:
        """Log the effective configuration."""
        logger.info("Configuration loaded:")
        logger.info("  Cache File: %s", self.cache_path)
        logger.info("  Playlist URL: %s", "configured" if self.playlist_url else "not set")
        logger.info("  Device Backend: %s", self.backend_base_url or "not set")
        logger.info(
            "  Playlist Timeouts: connect=%.0fs read=%.0fs",
            self.playlist_connect_timeout_sec,
            self.playlist_read_timeout_sec,
        )
        logger.info(
            "  EPG Timeouts: connect=%.0fs read=%.0fs",
            self.epg_connect_timeout_sec,
            self.epg_read_timeout_sec,
        )
        logger.info("  Partial Snapshot Every: %s channels", self.partial_snapshot_every)
        logger.info("  Fetch Retries: %s (backoff %.1f)", self.fetch_max_retries, self.fetch_backoff_factor)


@lru_cache
def get_settings() -> IngestSettings:
    """Return the process-wide settings, built on first use."""
    settings = IngestSettings()
    settings.log_summary()
    return settings


def setup_logging(level: int = logging.INFO) -> None:
    """Configure library logging for host applications that have none."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
