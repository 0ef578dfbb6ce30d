"""Command-line interface helpers for feed_timeline."""

from __future__ import annotations

import argparse
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import (
    Any,
    Callable,
    cast,
    Dict,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    TYPE_CHECKING,
)
from urllib.parse import urlparse

from pydantic import ValidationError

from . import __version__, config, progress, workflow

if TYPE_CHECKING:  # pragma: no cover - typing only
    import tqdm

_LOGGER = logging.getLogger(__name__)

# Progress bar constants
TQDM_NCOLS = 80
TQDM_MIN_INTERVAL = 0.5
TQDM_MIN_ITERS = 1
BYTES_PER_KB = 1024


class _TqdmProgress:
    """Simple adapter that exposes tqdm's update interface."""

    def __init__(self, bar: "tqdm.tqdm") -> None:
        self._bar = bar

    def update(self, advance: int) -> None:
        self._bar.update(advance)


@contextmanager
def _tqdm_progress(total: Optional[int], description: str) -> Iterator[_TqdmProgress]:
    """Create a tqdm progress context matching the shared progress API."""
    from tqdm import tqdm

    kwargs: Dict[str, Any] = {"desc": description}
    if total is None:
        kwargs.update(
            total=None,
            unit="",
            leave=False,
            miniters=TQDM_MIN_ITERS,
            mininterval=TQDM_MIN_INTERVAL,
            bar_format="{desc}: {elapsed}",
            ncols=TQDM_NCOLS,
            dynamic_ncols=False,
        )
    elif description == workflow.FEEDS_PROGRESS_LABEL:
        kwargs.update(total=total, unit="feed", leave=True)
    else:
        kwargs.update(
            total=total,
            unit="B",
            unit_scale=True,
            unit_divisor=BYTES_PER_KB,
            leave=False,
        )

    with tqdm(**kwargs) as bar:
        yield _TqdmProgress(bar)


def _validate_feed_url(feed_value: str, errors: List[str]) -> None:
    """Validate feed URL format.

    Args:
        feed_value: Feed URL string
        errors: List to append validation errors to
    """
    parsed_obj = urlparse(feed_value)
    if parsed_obj.scheme not in ("http", "https"):
        errors.append(f"Feed URL must be http or https: {feed_value}")
    if not parsed_obj.netloc:
        errors.append(f"Feed URL must have a valid hostname: {feed_value}")


def _parse_published_after(value: str) -> datetime:
    """argparse type for ``--published-after`` (ISO 8601 date or datetime)."""
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an ISO 8601 date: {value}") from exc


def validate_args(args: argparse.Namespace) -> None:
    """Validate parsed CLI arguments and raise ValueError when invalid."""
    errors: List[str] = []

    feeds = [value.strip() for value in args.feeds or [] if value.strip()]
    if not feeds:
        errors.append("At least one feed URL is required")
    for feed_value in feeds:
        _validate_feed_url(feed_value, errors)

    if args.max_items is not None and args.max_items < 0:
        errors.append(f"--max-items must be non-negative, got: {args.max_items}")

    if args.timeout <= 0:
        errors.append(f"--timeout must be positive, got: {args.timeout}")

    if args.workers < 1:
        errors.append("--workers must be at least 1")

    for category in args.skip_category or []:
        if category not in config.SPONSORBLOCK_CATEGORIES:
            errors.append(
                f"--skip-category must be one of {', '.join(config.SPONSORBLOCK_CATEGORIES)}, "
                f"got: {category}"
            )

    if errors:
        raise ValueError("Invalid input parameters:\n  " + "\n  ".join(errors))


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    """Add common arguments to parser.

    Args:
        parser: Argument parser to add arguments to
    """
    parser.add_argument("--config", default=None, help="Path to configuration file (JSON or YAML)")
    parser.add_argument("feeds", nargs="*", default=[], help="RSS or Atom feed URL(s)")
    parser.add_argument(
        "--max-items", type=int, default=None, help="Maximum number of items per feed"
    )
    parser.add_argument(
        "--published-after",
        type=_parse_published_after,
        default=None,
        help="Only keep items published after this ISO 8601 date (naive means UTC)",
    )
    parser.add_argument(
        "--metadata-only",
        action="store_true",
        help="Only read channel metadata (title, link, thumbnail)",
    )
    parser.add_argument("--user-agent", default=config.DEFAULT_USER_AGENT, help="User-Agent header")
    parser.add_argument(
        "--timeout",
        type=int,
        default=config.DEFAULT_TIMEOUT_SECONDS,
        help="Request timeout in seconds",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=config.DEFAULT_WORKERS,
        help="Number of feeds fetched in parallel",
    )
    parser.add_argument("--version", action="store_true", help="Show program version and exit")
    parser.add_argument(
        "--log-file",
        default=None,
        help="Path to log file (logs will be written to both console and file)",
    )
    parser.add_argument(
        "--log-level",
        default=config.DEFAULT_LOG_LEVEL,
        type=str.upper,
        help="Logging level (e.g., DEBUG, INFO)",
    )


def _add_output_arguments(parser: argparse.ArgumentParser) -> None:
    output_group = parser.add_argument_group("Output")
    output_group.add_argument(
        "--output", default=None, help="Write ingested items and chapters to this file"
    )
    output_group.add_argument(
        "--output-format",
        choices=config.VALID_OUTPUT_FORMATS,
        default="json",
        help="Output file format (default: json)",
    )


def _add_chapter_arguments(parser: argparse.ArgumentParser) -> None:
    """Add sponsor-merging and chapter navigation arguments to parser.

    Args:
        parser: Argument parser to add arguments to
    """
    chapter_group = parser.add_argument_group("Chapters")
    chapter_group.add_argument(
        "--merge-sponsor-segments",
        action="store_true",
        help="Merge SponsorBlock segments into item chapters",
    )
    chapter_group.add_argument(
        "--sponsorblock-api-base",
        default=None,
        help=f"SponsorBlock API base URL (default: {config.DEFAULT_SPONSORBLOCK_API_BASE})",
    )
    chapter_group.add_argument(
        "--skip-category",
        action="append",
        default=None,
        help="Sponsor category to skip (repeatable, default: sponsor)",
    )
    chapter_group.add_argument(
        "--previous-chapter-delay",
        type=float,
        default=config.DEFAULT_PREVIOUS_CHAPTER_DELAY_SECONDS,
        help="Seconds into a chapter after which 'previous' restarts it",
    )
    chapter_group.add_argument(
        "--previous-chapter-grace",
        type=float,
        default=config.DEFAULT_PREVIOUS_CHAPTER_GRACE_SECONDS,
        help="Seconds at a chapter start during which 'previous' restarts it",
    )
    chapter_group.add_argument(
        "--end-of-media-margin",
        type=float,
        default=config.DEFAULT_END_OF_MEDIA_MARGIN_SECONDS,
        help="Distance from the end used when skipping a trailing sponsor segment",
    )


def _load_and_merge_config(
    parser: argparse.ArgumentParser, config_path: str, argv: Optional[Sequence[str]]
) -> argparse.Namespace:
    """Load configuration file and merge with CLI arguments.

    Args:
        parser: Argument parser
        config_path: Path to configuration file
        argv: Command-line arguments

    Returns:
        Parsed arguments with config merged

    Raises:
        ValueError: If config is invalid
    """
    config_data = config.load_config_file(config_path)
    valid_dests = {action.dest for action in parser._actions if action.dest}
    unknown_keys = [
        key
        for key in config_data.keys()
        if key not in valid_dests and key not in config.Config.model_fields
    ]
    if unknown_keys:
        raise ValueError("Unknown config option(s): " + ", ".join(sorted(unknown_keys)))

    try:
        config_model = config.Config.model_validate(config_data)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc

    defaults_updates: Dict[str, Any] = config_model.model_dump(
        exclude_none=True,
        by_alias=True,
    )
    defaults_updates = {key: value for key, value in defaults_updates.items() if key in valid_dests}

    parser.set_defaults(**defaults_updates)
    args = parser.parse_args(argv)
    # Positional feeds replace the configured ones only when given
    if not args.feeds:
        args.feeds = list(config_model.feed_urls)
    return args


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ingest RSS/Atom feeds and derive chapter timelines for their items."
    )
    _add_common_arguments(parser)
    _add_output_arguments(parser)
    _add_chapter_arguments(parser)
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments, optionally merging configuration file defaults."""
    parser = _build_parser()

    initial_args, _ = parser.parse_known_args(argv)

    if initial_args.version:
        print(f"feed_timeline {__version__}")
        raise SystemExit(0)

    if initial_args.config:
        args = _load_and_merge_config(parser, initial_args.config, argv)
    else:
        args = parser.parse_args(argv)

    validate_args(args)
    return args


def _build_config(args: argparse.Namespace) -> config.Config:
    """Materialize a Config object from already-validated CLI arguments."""
    payload: Dict[str, Any] = {
        "feed_urls": [value.strip() for value in args.feeds if value.strip()],
        "max_items": args.max_items,
        "published_after": args.published_after,
        "metadata_only": args.metadata_only,
        "user_agent": args.user_agent,
        "timeout": args.timeout,
        "workers": args.workers,
        "log_level": args.log_level,
        "log_file": args.log_file,
        "output_file": args.output,
        "output_format": args.output_format,
        "merge_sponsor_segments": args.merge_sponsor_segments,
        "sponsorblock_api_base": args.sponsorblock_api_base,
        "skip_categories": args.skip_category,
        "previous_chapter_delay_seconds": args.previous_chapter_delay,
        "previous_chapter_grace_seconds": args.previous_chapter_grace,
        "end_of_media_margin_seconds": args.end_of_media_margin,
    }
    # Pydantic's model_validate returns the correct type, but mypy needs help
    return cast(config.Config, config.Config.model_validate(payload))


def _log_configuration(cfg: config.Config, logger: logging.Logger) -> None:
    """Log all configuration values in a structured format.

    Args:
        cfg: Configuration object
        logger: Logger instance to use
    """
    logger.info("=" * 80)
    logger.info("Configuration")
    logger.info("=" * 80)

    logger.info("Core Settings:")
    logger.info(f"  Feeds: {len(cfg.feed_urls)}")
    for url in cfg.feed_urls:
        logger.info(f"    - {url}")
    logger.info(f"  Max Items: {cfg.max_items if cfg.max_items is not None else 'all'}")
    if cfg.published_after:
        logger.info(f"  Published After: {cfg.published_after.isoformat()}")
    logger.info(f"  Metadata Only: {cfg.metadata_only}")
    logger.info(f"  Workers: {cfg.workers}")
    logger.info(f"  Log Level: {cfg.log_level}")
    logger.info(f"  Log File: {cfg.log_file or 'console only'}")

    logger.info("HTTP Settings:")
    logger.info(f"  Timeout: {cfg.timeout}s")
    logger.info(
        f"  User-Agent: {cfg.user_agent[:50]}..."
        if len(cfg.user_agent) > 50
        else f"  User-Agent: {cfg.user_agent}"
    )

    logger.info("Chapter Settings:")
    logger.info(f"  Merge Sponsor Segments: {cfg.merge_sponsor_segments}")
    if cfg.merge_sponsor_segments:
        logger.info(f"  SponsorBlock API: {cfg.sponsorblock_api_base}")
        logger.info(f"  Skip Categories: {', '.join(cfg.skip_categories) or 'none'}")

    logger.info("Output:")
    if cfg.output_file:
        logger.info(f"  File: {cfg.output_file} ({cfg.output_format})")
    else:
        logger.info("  File: none (summary only)")

    logger.info("=" * 80)


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    apply_log_level_fn: Optional[Callable[[str, Optional[str]], None]] = None,
    run_pipeline_fn: Optional[Callable[[config.Config], Tuple[int, str]]] = None,
    logger: Optional[logging.Logger] = None,
) -> int:
    """Entry point for the CLI; returns an exit status code."""
    progress.set_progress_factory(_tqdm_progress)
    log = logger or _LOGGER
    if apply_log_level_fn is None:
        apply_log_level_fn = workflow.apply_log_level
    if run_pipeline_fn is None:
        run_pipeline_fn = workflow.run_pipeline

    try:
        args = parse_args(argv)
    except ValueError as exc:
        log.error(f"Error: {exc}")
        return 1

    try:
        cfg = _build_config(args)
    except ValidationError as exc:
        log.error(f"Invalid configuration: {exc}")
        return 1

    apply_log_level_fn(cfg.log_level, cfg.log_file)

    log.info("Starting feed ingestion")
    _log_configuration(cfg, log)

    try:
        _, summary = run_pipeline_fn(cfg)
    except Exception as exc:
        log.error(f"Unexpected failure: {exc}")
        return 1

    log.info(summary)
    return 0


if __name__ == "__main__":  # pragma: no cover - script entry
    raise SystemExit(main())
