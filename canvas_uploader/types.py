"""Type definitions for canvas uploader."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, TypedDict

from canvas_uploader.errors import UploaderError
from canvas_uploader.schemas import UploadedFileRef


@dataclass(frozen=True)
class UploadContext:
    """Read-only target of a run, shared by every concurrent file upload.

    Attributes:
        token: Canvas API access token.
        base_url: Canvas instance root, e.g. ``https://canvas.example.edu``.
        course_id: Target course ID.
        assignment_id: Target assignment ID.
    """

    token: str
    base_url: str
    course_id: int
    assignment_id: int

    def __post_init__(self) -> None:
        if self.course_id < 0 or self.assignment_id < 0:
            raise ValueError("course_id and assignment_id must be non-negative")
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

    @property
    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    @property
    def assignment_api_url(self) -> str:
        return f"{self.base_url}/api/v1/courses/{self.course_id}/assignments/{self.assignment_id}"


@dataclass(frozen=True)
class LocalFile:
    """A resolved local file whose content is read lazily.

    Attributes:
        path: Path to the file.
        size_bytes: File size at resolution time.
    """

    path: Path
    size_bytes: int

    @property
    def name(self) -> str:
        return self.path.name

    def open(self) -> BinaryIO:
        """Open a fresh binary read handle on the file."""
        return open(self.path, "rb")


@dataclass(frozen=True)
class FileUploadOutcome:
    """Tagged result of one file's upload pipeline: exactly one of ref/error is set."""

    path: Path
    ref: UploadedFileRef | None = None
    error: UploaderError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class FileReport(TypedDict):
    """Type definition for per-file report entries."""

    path: str
    size: int | None
    file_id: int | None
    stage: str | None
    error: str | None


class RunReport(TypedDict):
    """Type definition for the run report."""

    course_id: int
    assignment_id: int
    submitted: bool
    submission_error: str | None
    files: list[FileReport]
