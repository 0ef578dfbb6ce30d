"""Config-file driven entry point for unattended runs.

`run` and `run_from_config_file` never raise for pipeline or configuration
problems; they report them through `ServiceResult`. `main` wraps them for
process managers:

    # /etc/systemd/system/feed-timeline.service
    [Service]
    ExecStart=feed-timeline-service --config /etc/feed_timeline/config.yaml

Example:
    >>> from feed_timeline import service
    >>> result = service.run_from_config_file("config.yaml")
    >>> result.success, result.items_processed
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError

from . import __version__, config, workflow

logger = logging.getLogger(__name__)


@dataclass
class ServiceResult:
    """Outcome of one unattended run.

    Attributes:
        items_processed: Items ingested, or channels read in metadata-only mode
        summary: Pipeline summary text; empty on failure
        success: False when configuration or the pipeline failed
        error: Failure message when ``success`` is False
    """

    items_processed: int
    summary: str
    success: bool = True
    error: Optional[str] = None


def _failure(message: str) -> ServiceResult:
    return ServiceResult(items_processed=0, summary="", success=False, error=message)


def run(cfg: config.Config) -> ServiceResult:
    """Apply the configured logging and run the ingestion pipeline."""
    try:
        workflow.apply_log_level(level=cfg.log_level or "INFO", log_file=cfg.log_file)
        count, summary = workflow.run_pipeline(cfg)
    except Exception as exc:
        logger.error("Pipeline run failed: %s", exc, exc_info=True)
        return _failure(str(exc))
    return ServiceResult(items_processed=count, summary=summary)


def run_from_config_file(config_path: str | Path) -> ServiceResult:
    """Load a JSON or YAML configuration file and `run` it.

    A missing, unreadable or invalid file gives an unsuccessful result.
    """
    try:
        cfg = config.Config(**config.load_config_file(str(config_path)))
    except (ValueError, ValidationError) as exc:
        message = f"Failed to load configuration file: {exc}"
        logger.error(message)
        return _failure(message)
    return run(cfg)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="feed-timeline-service",
        description="Ingest the feeds listed in a configuration file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Exit status is 0 when the run succeeds and 1 otherwise.\n"
            "All settings, including logging, come from the configuration file."
        ),
    )
    parser.add_argument("--config", required=True, help="JSON or YAML configuration file")
    parser.add_argument("--version", action="version", version=f"feed_timeline {__version__}")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run from ``--config`` and return the process exit code."""
    args = _build_parser().parse_args(argv)
    result = run_from_config_file(args.config)
    if not result.success:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    print(result.summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
