"""Error taxonomy for the upload and submission pipeline."""

from __future__ import annotations

from pathlib import Path


class UploaderError(Exception):
    """Base error carrying the file and pipeline stage it relates to.

    Attributes:
        path: Local file the failure belongs to, if any.
        stage: Pipeline stage that failed (``resolve``, ``bucket``, ``storage``,
            ``confirm``, ``submit``, ...), if known.
    """

    def __init__(self, message: str, *, path: Path | str | None = None, stage: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = Path(path) if path is not None else None
        self.stage = stage

    def with_context(self, *, path: Path | str | None = None, stage: str | None = None) -> UploaderError:
        """Fill in path and stage where they are not set yet and return self."""
        if self.path is None and path is not None:
            self.path = Path(path)
        if self.stage is None and stage is not None:
            self.stage = stage
        return self

    def __str__(self) -> str:
        if self.stage and self.path:
            return f"{self.stage} failed for {self.path.name}: {self.message}"
        if self.stage:
            return f"{self.stage} failed: {self.message}"
        if self.path:
            return f"{self.path.name}: {self.message}"
        return self.message


class LocalFileError(UploaderError):
    """A local filesystem precondition was violated."""


class NotFoundError(LocalFileError):
    """The path does not exist."""


class NotAFileError(LocalFileError):
    """The path exists but is not a regular file."""


class TransportError(UploaderError):
    """Network-level failure: connection error, timeout or non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        path: Path | str | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(message, path=path, stage=stage)
        self.status = status


class ProtocolError(UploaderError):
    """A response arrived but did not have the expected shape."""


class SubmissionError(UploaderError):
    """The final submission request was not accepted."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message, stage="submit")
        self.status = status


class CourseNotFoundError(UploaderError):
    """The target course is not visible to the token's user."""


class NoFilesMatchedError(UploaderError):
    """The file pattern did not match any regular file."""
