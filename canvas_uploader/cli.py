"""Command-line interface for canvas submission uploader."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError

from canvas_uploader.configs import Config, load_config
from canvas_uploader.errors import UploaderError
from canvas_uploader.workflow import run

TARGET_FIELDS = ("base_url", "course_id", "assignment_id")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application.

    Args:
        verbose: Whether to enable debug logging.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_config(config_path: Path | None, options: dict[str, Any]) -> Config:
    """Merge an optional YAML config with command-line options.

    Options that are None are ignored; the others override the file. A new
    ``url`` replaces the target fields the file derived from its own URL.

    Args:
        config_path: Optional path to the YAML configuration file.
        options: Command-line option values keyed by config field name.

    Returns:
        Validated Config.

    Raises:
        pydantic.ValidationError: If the merged configuration is invalid.
    """
    data: dict[str, Any] = load_config(config_path).model_dump(exclude_none=True) if config_path else {}
    canvas: dict[str, Any] = data.setdefault("canvas", {})
    operational: dict[str, Any] = data.setdefault("operational", {})

    if options.get("url") is not None:
        for field in TARGET_FIELDS:
            canvas.pop(field, None)
    for field in ("token", "url", *TARGET_FIELDS):
        if options.get(field) is not None:
            canvas[field] = options[field]
    for field in ("file_pattern", "base_dir", "report_path"):
        if options.get(field) is not None:
            data[field] = options[field]
    for field in ("request_timeout_seconds", "max_concurrency"):
        if options.get(field) is not None:
            operational[field] = options[field]
    if options.get("skip_course_check"):
        operational["verify_course"] = False

    return Config.model_validate(data)


@click.command()
@click.option("-c", "--config", "config_path", type=click.Path(exists=True, path_type=Path), help="YAML configuration file.")
@click.option("--token", envvar="CANVAS_TOKEN", help="Canvas API access token.")
@click.option("--url", envvar="CANVAS_URL", help="Assignment URL, e.g. https://canvas.example.edu/courses/10/assignments/25.")
@click.option("--base-url", help="Canvas instance URL (instead of --url).")
@click.option("--course-id", type=click.IntRange(min=0), help="Course ID (instead of --url).")
@click.option("--assignment-id", type=click.IntRange(min=0), help="Assignment ID (instead of --url).")
@click.option("-f", "--file", "file_pattern", help="Glob pattern of the files to submit.")
@click.option("--base-dir", type=click.Path(file_okay=False, path_type=Path), help="Directory the pattern is relative to.")
@click.option("--report", "report_path", type=click.Path(dir_okay=False, path_type=Path), help="Write a .yaml/.csv report.")
@click.option("--timeout", "request_timeout_seconds", type=click.IntRange(min=1), help="Request timeout in seconds.")
@click.option("--max-concurrency", type=click.IntRange(min=1), help="Maximum number of concurrent uploads.")
@click.option("--skip-course-check", is_flag=True, help="Do not look the course up before uploading.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(config_path: Path | None, verbose: bool, **options: Any) -> None:
    """Upload files matching a pattern and submit them to a Canvas assignment."""
    setup_logging(verbose)

    try:
        config = build_config(config_path, options)
    except ValidationError as e:
        raise click.UsageError(f"Invalid configuration:\n{e}") from e

    try:
        submission = run(config)
    except UploaderError as e:
        raise click.ClickException(str(e)) from e

    if submission.workflow_state:
        print(f"Submission state: {submission.workflow_state}")


if __name__ == "__main__":
    main()
