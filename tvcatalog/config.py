from typing import Annotated, TYPE_CHECKING
import logging

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from tvcatalog.utils.logging_helpers import sanitize_url

if TYPE_CHECKING:
    from tvcatalog.services.catalog_types import CatalogSnapshot


logger = logging.getLogger(__name__)

DEFAULT_M3U_URL = (
    "https://raw.githubusercontent.com/mccoy88f/OMG-TV-Stremio-Addon/refs/heads/main/link.playlist"
)
DEFAULT_EPG_URL = (
    "https://raw.githubusercontent.com/mccoy88f/OMG-TV-Stremio-Addon/refs/heads/main/link.epg"
)


class CatalogSettings(BaseSettings):
    """Service settings loaded from environment variables.

    The instance is frozen: components receive it in their constructor and
    never mutate it. Anything derived from it is computed by the module-level
    helpers below.
    """

    m3u_url: str = DEFAULT_M3U_URL
    epg_url: Annotated[list[str], NoDecode] = [DEFAULT_EPG_URL]
    enable_epg: bool = True

    update_interval_sec: float = 12 * 60 * 60
    max_age_sec: float = 24 * 60 * 60
    retry_attempts: int = 3
    retry_delay_sec: float = 5.0
    fetch_timeout_sec: float = 30.0

    max_programs_per_channel: int = 50
    cache_expiry_sec: float = 24 * 60 * 60
    epg_parse_timeout_sec: int = 600  # 0 disables timeout
    epg_max_concurrency: int = 4

    port: int = 10000
    domain: str | None = None
    subpath: str = ""
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @field_validator("epg_url", mode="before")
    @classmethod
    def parse_epg_url(cls, value):
        """Parse comma-separated URLs or list."""
        if value is None:
            return []
        if isinstance(value, str):
            if not value.strip():
                return []
            return [url.strip() for url in value.split(",") if url.strip()]
        if isinstance(value, (list, tuple)):
            return [str(url).strip() for url in value if str(url).strip()]
        return []

    @field_validator("epg_url", mode="after")
    @classmethod
    def validate_epg_url(cls, value):
        """Validate EPG source URLs are HTTP/HTTPS."""
        for url in value:
            if not url.lower().startswith(("http://", "https://")):
                raise ValueError(f"EPG source URL must be HTTP/HTTPS: {url}")
        return value

    @field_validator("m3u_url")
    @classmethod
    def validate_m3u_url(cls, value: str) -> str:
        """Playlist location must not be blank."""
        value = value.strip()
        if not value:
            raise ValueError("m3u_url must not be empty")
        return value

    @field_validator(
        "update_interval_sec",
        "max_age_sec",
        "fetch_timeout_sec",
        "cache_expiry_sec",
    )
    @classmethod
    def validate_positive_durations(cls, value: float, info) -> float:
        """Ensure durations are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("retry_delay_sec", "epg_parse_timeout_sec")
    @classmethod
    def validate_non_negative(cls, value, info):
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("retry_attempts", "max_programs_per_channel", "epg_max_concurrency")
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        """Ensure counters are positive integers."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @model_validator(mode="after")
    def validate_epg_configuration(self):
        """Validate cross-field configuration."""
        if self.enable_epg and not self.epg_url:
            logger.warning(
                "EPG enabled but no EPG_URL configured - only playlist header sources will be used"
            )
        if self.max_age_sec < self.update_interval_sec:
            logger.warning(
                "max_age_sec (%ss) is shorter than update_interval_sec (%ss); "
                "every scheduled tick will refetch the playlist",
                self.max_age_sec,
                self.update_interval_sec,
            )
        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Playlist: %s", sanitize_url(self.m3u_url))
        logger.info("  EPG: %s (%s source(s))", "enabled" if self.enable_epg else "disabled", len(self.epg_url))
        logger.info("  Update Interval: %ss", self.update_interval_sec)
        logger.info("  Max Snapshot Age: %ss", self.max_age_sec)
        logger.info(
            "  Retry: %s attempt(s), %.1fs delay, %.1fs timeout",
            self.retry_attempts,
            self.retry_delay_sec,
            self.fetch_timeout_sec,
        )
        logger.info("  Max Programs Per Channel: %s", self.max_programs_per_channel)
        logger.info("  EPG Cache Expiry: %ss", self.cache_expiry_sec)
        logger.info(
            "  EPG Parse Timeout: %s",
            f"{self.epg_parse_timeout_sec}s" if self.epg_parse_timeout_sec else "disabled",
        )


def load_settings(**overrides) -> CatalogSettings:
    """Build settings from the environment, applying explicit overrides."""
    return CatalogSettings(**overrides)


def get_base_url(settings: CatalogSettings) -> str:
    """Public base URL the service is reachable at."""
    if settings.domain:
        domain = settings.domain.rstrip("/")
        subpath = "/" + settings.subpath.strip("/") if settings.subpath.strip("/") else ""
        return f"{domain}{subpath}"
    return f"http://localhost:{settings.port}"


def get_manifest_url(settings: CatalogSettings) -> str:
    return f"{get_base_url(settings)}/manifest.json"


def combine_epg_urls(settings: CatalogSettings, snapshot: "CatalogSnapshot") -> list[str]:
    """
    Merge configured EPG sources with guide URLs advertised by the playlist.

    Configured URLs come first; duplicates are dropped while preserving order.

    Args:
        settings: Service settings
        snapshot: Current catalog snapshot

    Returns:
        Ordered list of unique guide source URLs
    """
    combined: list[str] = []
    for url in [*settings.epg_url, *snapshot.epg_urls]:
        if url and url not in combined:
            combined.append(url)
    return combined


def setup_logging(level: str = "INFO") -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
