from __future__ import annotations

import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# SKIP .env loading in test environments - tests should use Config objects and
# environment variables directly, never rely on .env files
def _is_test_environment() -> bool:
    """Check if we're running in a test environment."""
    if "pytest" in sys.modules or "PYTEST_CURRENT_TEST" in os.environ:
        return True
    return os.environ.get("TESTING", "").lower() in ("1", "true", "yes")


if not _is_test_environment():
    env_path = Path(__file__).parent.parent.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=False)
    else:
        load_dotenv(override=False)

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_TIMEOUT_SECONDS = 20
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/119.0 Safari/537.36"
)
DEFAULT_WORKERS = max(1, min(8, os.cpu_count() or 4))
DEFAULT_SPONSORBLOCK_API_BASE = "https://sponsor.ajay.app"
DEFAULT_SKIP_CATEGORIES = ("sponsor",)
DEFAULT_PREVIOUS_CHAPTER_DELAY_SECONDS = 3.0
DEFAULT_PREVIOUS_CHAPTER_GRACE_SECONDS = 0.5
DEFAULT_END_OF_MEDIA_MARGIN_SECONDS = 0.5
MIN_TIMEOUT_SECONDS = 1

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_OUTPUT_FORMATS = ("json", "yaml")
SPONSORBLOCK_CATEGORIES = (
    "sponsor",
    "selfpromo",
    "interaction",
    "intro",
    "outro",
    "preview",
    "music_offtopic",
    "filler",
)


class Config(BaseModel):
    """Configuration model for the feed ingestion pipeline.

    Configuration can be created programmatically or loaded from JSON/YAML files
    using `load_config_file()`. The model is frozen after creation.

    Attributes:
        feed_urls: Feed URLs to ingest (alias ``feeds``).
        max_items: Maximum number of items to take from each feed. None takes all.
        published_after: Only keep items published strictly after this instant.
        metadata_only: Only read channel metadata (subscription registration).
        user_agent: HTTP User-Agent header for requests.
        timeout: Request timeout in seconds (minimum: 1).
        workers: Number of feeds fetched in parallel.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional log file path (also read from LOG_FILE).
        output_file: Optional path where ingested items are written.
        output_format: Output file format ("json" or "yaml").
        merge_sponsor_segments: Merge SponsorBlock segments into item chapters.
        sponsorblock_api_base: SponsorBlock API base URL.
        skip_categories: Sponsor categories whose segments are skipped.
        previous_chapter_delay_seconds: Elapsed time after which "previous"
            restarts the current chapter instead of going back.
        previous_chapter_grace_seconds: Elapsed time below which "previous" treats
            the current chapter as just entered and restarts it.
        end_of_media_margin_seconds: Distance from the end used when skipping a
            trailing sponsor segment.

    Example:
        >>> from feed_timeline import Config
        >>> cfg = Config(
        ...     feeds=["https://www.youtube.com/feeds/videos.xml?channel_id=UC123"],
        ...     max_items=10,
        ...     merge_sponsor_segments=True,
        ... )
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    feed_urls: List[str] = Field(default_factory=list, alias="feeds")
    max_items: Optional[int] = Field(default=None, alias="max_items")
    published_after: Optional[datetime] = Field(default=None, alias="published_after")
    metadata_only: bool = Field(default=False, alias="metadata_only")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, alias="user_agent")
    timeout: int = Field(default=DEFAULT_TIMEOUT_SECONDS, alias="timeout")
    workers: int = Field(default=DEFAULT_WORKERS, alias="workers")
    log_level: str = Field(default=DEFAULT_LOG_LEVEL, alias="log_level")
    log_file: Optional[str] = Field(default=None, alias="log_file")
    output_file: Optional[str] = Field(default=None, alias="output")
    output_format: Literal["json", "yaml"] = Field(default="json", alias="output_format")
    merge_sponsor_segments: bool = Field(default=False, alias="merge_sponsor_segments")
    sponsorblock_api_base: str = Field(
        default=DEFAULT_SPONSORBLOCK_API_BASE, alias="sponsorblock_api_base"
    )
    skip_categories: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SKIP_CATEGORIES), alias="skip_category"
    )
    previous_chapter_delay_seconds: float = Field(
        default=DEFAULT_PREVIOUS_CHAPTER_DELAY_SECONDS, alias="previous_chapter_delay"
    )
    previous_chapter_grace_seconds: float = Field(
        default=DEFAULT_PREVIOUS_CHAPTER_GRACE_SECONDS, alias="previous_chapter_grace"
    )
    end_of_media_margin_seconds: float = Field(
        default=DEFAULT_END_OF_MEDIA_MARGIN_SECONDS, alias="end_of_media_margin"
    )

    @model_validator(mode="before")
    @classmethod
    def _preprocess_config_data(cls, data: Any) -> Any:
        """Fill unset values from environment variables.

        LOG_LEVEL takes precedence over the configured value; LOG_FILE and
        SPONSORBLOCK_API_BASE only apply when the value is not configured.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)

        env_log_level = os.getenv("LOG_LEVEL")
        if env_log_level:
            env_value = env_log_level.strip().upper()
            if env_value in VALID_LOG_LEVELS:
                data["log_level"] = env_value

        for key, env_name in (
            ("log_file", "LOG_FILE"),
            ("sponsorblock_api_base", "SPONSORBLOCK_API_BASE"),
        ):
            if data.get(key) is None:
                env_value = (os.getenv(env_name) or "").strip()
                if env_value:
                    data[key] = env_value
        return data

    @field_validator("feed_urls", mode="before")
    @classmethod
    def _coerce_feed_urls(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        urls = [str(v).strip() for v in value if str(v).strip()]
        for url in urls:
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"Feed URL must be http or https: {url}")
        return urls

    @field_validator("max_items", mode="before")
    @classmethod
    def _coerce_max_items(cls, value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        try:
            parsed = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("max_items must be an integer") from exc
        if parsed < 0:
            raise ValueError("max_items must be non-negative")
        return parsed

    @field_validator("published_after", mode="after")
    @classmethod
    def _ensure_aware_cutoff(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Treat naive cutoffs as UTC so they compare with feed dates."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("timeout", mode="before")
    @classmethod
    def _ensure_timeout(cls, value: Any) -> int:
        if value is None or value == "":
            return DEFAULT_TIMEOUT_SECONDS
        try:
            timeout = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("timeout must be an integer") from exc
        return max(MIN_TIMEOUT_SECONDS, timeout)

    @field_validator("workers", mode="before")
    @classmethod
    def _ensure_workers(cls, value: Any) -> int:
        if value is None or value == "":
            return DEFAULT_WORKERS
        try:
            workers = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError("workers must be an integer") from exc
        if workers < 1:
            raise ValueError("workers must be at least 1")
        return workers

    @field_validator("user_agent", mode="before")
    @classmethod
    def _coerce_user_agent(cls, value: Any) -> str:
        if value is None:
            return DEFAULT_USER_AGENT
        return str(value).strip() or DEFAULT_USER_AGENT

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> str:
        """Normalize log level value."""
        if value is None:
            return DEFAULT_LOG_LEVEL
        return str(value).strip().upper() or DEFAULT_LOG_LEVEL

    @field_validator("log_level", mode="after")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        """Validate log level is one of the valid levels."""
        if value not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {VALID_LOG_LEVELS}, got: {value}")
        return value

    @field_validator("log_file", mode="before")
    @classmethod
    def _load_log_file_from_env(cls, value: Any) -> Optional[str]:
        """Load log file path from environment variable if not provided."""
        if value is not None and str(value).strip():
            return str(value).strip()
        env_log_file = os.getenv("LOG_FILE")
        if env_log_file and env_log_file.strip():
            return env_log_file.strip()
        return None

    @field_validator("output_format", mode="before")
    @classmethod
    def _normalize_output_format(cls, value: Any) -> str:
        if value is None:
            return "json"
        fmt = str(value).strip().lower()
        if fmt == "yml":
            fmt = "yaml"
        if fmt not in VALID_OUTPUT_FORMATS:
            raise ValueError(f"output_format must be one of {VALID_OUTPUT_FORMATS}, got: {value}")
        return fmt

    @field_validator("sponsorblock_api_base", mode="before")
    @classmethod
    def _load_sponsorblock_api_base_from_env(cls, value: Any) -> str:
        """Load SponsorBlock API base from environment variable if not provided."""
        if value is not None and str(value).strip():
            return str(value).strip().rstrip("/")
        env_value = os.getenv("SPONSORBLOCK_API_BASE")
        if env_value and env_value.strip():
            return env_value.strip().rstrip("/")
        return DEFAULT_SPONSORBLOCK_API_BASE

    @field_validator("skip_categories", mode="before")
    @classmethod
    def _coerce_skip_categories(cls, value: Any) -> List[str]:
        if value is None:
            return list(DEFAULT_SKIP_CATEGORIES)
        if isinstance(value, str):
            value = [part for part in value.split(",")]
        categories = [str(v).strip().lower() for v in value if str(v).strip()]
        unknown = [c for c in categories if c not in SPONSORBLOCK_CATEGORIES]
        if unknown:
            raise ValueError(
                f"skip_categories must be drawn from {SPONSORBLOCK_CATEGORIES}, got: {unknown}"
            )
        return categories

    @field_validator(
        "previous_chapter_delay_seconds",
        "previous_chapter_grace_seconds",
        "end_of_media_margin_seconds",
        mode="after",
    )
    @classmethod
    def _ensure_non_negative_seconds(cls, value: float) -> float:
        if value < 0:
            raise ValueError("durations in seconds must be non-negative")
        return value


def load_config_file(path: str) -> Dict[str, Any]:  # noqa: C901 - file parsing handles formats
    """Load configuration from a JSON or YAML file.

    The file format is auto-detected from the extension (`.json`, `.yaml`, `.yml`).
    The returned dictionary can be unpacked into the `Config` constructor.

    Args:
        path: Path to configuration file. Supports tilde expansion.

    Returns:
        Dict[str, Any]: Configuration values keyed by `Config` field names or aliases.

    Raises:
        ValueError: If the path is empty or missing, the format is unsupported,
            parsing fails, or the top level is not a mapping

    Example:
        >>> from feed_timeline import Config, load_config_file
        >>> cfg = Config(**load_config_file("config.yaml"))

    Supported Formats:
        **YAML** (`.yaml`, `.yml`):

            feeds:
              - https://www.youtube.com/feeds/videos.xml?channel_id=UC123
            max_items: 20
            merge_sponsor_segments: true
    """
    if not path:
        raise ValueError("Config path cannot be empty")

    cfg_path = Path(path).expanduser()
    try:
        resolved = cfg_path.resolve()
    except (OSError, RuntimeError) as exc:
        raise ValueError(f"Invalid config path: {path} ({exc})") from exc

    if not resolved.exists():
        raise ValueError(f"Config file not found: {resolved}")

    suffix = resolved.suffix.lower()
    try:
        text = resolved.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Failed to read config file {resolved}: {exc}") from exc

    if suffix == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON config file {resolved}: {exc}") from exc
    elif suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML config file {resolved}: {exc}") from exc
    else:
        raise ValueError(f"Unsupported config file type: {resolved.suffix}")

    if not isinstance(data, dict):
        raise ValueError("Config file must contain a mapping/object at the top level")

    return data
