"""Configuration models for canvas submission uploader."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import BaseModel, Field, PositiveInt, field_validator, model_validator

from canvas_uploader.canvas_queries import parse_assignment_url
from canvas_uploader.reporting import REPORT_SUFFIXES
from canvas_uploader.types import UploadContext

# Default operational settings
DEFAULT_REQUEST_TIMEOUT_SECONDS: int = 300  # 5 minutes - Large files go through a single POST


class CanvasConfig(BaseModel):
    """Canvas authentication and assignment selection.

    Either ``url`` or all of ``base_url``, ``course_id`` and ``assignment_id``
    must be given. Explicit fields take precedence over values parsed from the URL.

    Attributes:
        token: Canvas API access token.
        url: Assignment page URL, e.g. https://canvas.example.edu/courses/10/assignments/25.
        base_url: Canvas instance root URL.
        course_id: Target course ID.
        assignment_id: Target assignment ID.
    """

    token: str = Field(min_length=1)
    url: str | None = None
    base_url: str | None = None
    course_id: int | None = Field(default=None, ge=0)
    assignment_id: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def fill_from_url(self) -> Self:
        """Derive missing target fields from the assignment URL."""
        if self.url:
            locator = parse_assignment_url(self.url)
            self.base_url = self.base_url or locator.base_url
            self.course_id = locator.course_id if self.course_id is None else self.course_id
            self.assignment_id = locator.assignment_id if self.assignment_id is None else self.assignment_id
        if self.base_url is None or self.course_id is None or self.assignment_id is None:
            raise ValueError("Either url or base_url, course_id and assignment_id must be provided")
        return self

    def to_context(self) -> UploadContext:
        """Build the read-only upload context for this target."""
        assert self.base_url is not None and self.course_id is not None and self.assignment_id is not None
        return UploadContext(
            token=self.token,
            base_url=self.base_url,
            course_id=self.course_id,
            assignment_id=self.assignment_id,
        )


class OperationalConfig(BaseModel):
    """Operational settings for timeouts and concurrency.

    Attributes:
        request_timeout_seconds: Total timeout of each HTTP request.
        max_concurrency: Maximum number of files uploading at once (None: unbounded).
        verify_course: Whether to check that the course is visible before uploading.
    """

    request_timeout_seconds: PositiveInt = DEFAULT_REQUEST_TIMEOUT_SECONDS
    max_concurrency: PositiveInt | None = None
    verify_course: bool = True


class Config(BaseModel):
    """Top-level configuration for the uploader workflow.

    Attributes:
        canvas: Canvas credentials and assignment info.
        file_pattern: Glob pattern to locate the files to submit.
        base_dir: Directory the pattern is relative to (default: current directory).
        report_path: Optional path to save the run report.
        operational: Operational settings for timeouts and concurrency.
    """

    canvas: CanvasConfig
    file_pattern: str = Field(min_length=1)
    base_dir: Path | None = None
    report_path: Path | None = None
    operational: OperationalConfig = Field(default_factory=OperationalConfig)

    @field_validator("base_dir", "report_path", mode="before")
    @classmethod
    def convert_to_path(cls, v: Any) -> Path | None:
        """Convert path fields to Path objects."""
        if v is None:
            return None
        return Path(v) if not isinstance(v, Path) else v

    @field_validator("report_path")
    @classmethod
    def check_report_format(cls, v: Path | None) -> Path | None:
        """Reject report paths whose extension has no writer, before anything is uploaded."""
        if v is not None and v.suffix.lower() not in REPORT_SUFFIXES:
            raise ValueError(
                f"Unsupported report file extension: {v.suffix or '<none>'}. "
                f"Supported formats: {', '.join(REPORT_SUFFIXES)}"
            )
        return v


def load_config(path: Path) -> Config:
    """Load YAML configuration and parse into Config model.

    Args:
        path: Path to YAML config.

    Returns:
        Parsed Config object with full validation.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        yaml.YAMLError: If YAML is malformed.
        pydantic.ValidationError: If config structure is invalid.
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path) as f:
        yaml_data = yaml.safe_load(f)

    return Config.model_validate(yaml_data)
