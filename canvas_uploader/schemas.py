"""Pydantic models for the Canvas REST payloads consumed by the uploader."""

from __future__ import annotations

import json
from typing import Any

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, StrictInt, field_validator


class Course(BaseModel):
    """Entry of ``GET /api/v1/courses``."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str | None = None


class UploadBucket(BaseModel):
    """Storage destination returned by the file upload request.

    Attributes:
        upload_url: URL the file content is posted to.
        upload_params: Form fields that must be echoed back verbatim.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    upload_url: AnyHttpUrl
    upload_params: dict[str, str]

    @field_validator("upload_params", mode="before")
    @classmethod
    def stringify_scalar_params(cls, v: Any) -> Any:
        """Coerce scalar param values to their JSON text; nested values are left to fail validation."""
        if not isinstance(v, dict):
            return v
        return {
            key: json.dumps(value) if isinstance(value, int | float | bool) else value
            for key, value in v.items()
        }


class UploadedFileRef(BaseModel):
    """Durable file object returned by the confirm step."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: StrictInt
    url: AnyHttpUrl
    display_name: str | None = None
    size: int | None = None
    content_type: str | None = None


class Submission(BaseModel):
    """Subset of the submission object returned by the submit call."""

    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    submission_type: str | None = None
    workflow_state: str | None = None
    attempt: int | None = None
