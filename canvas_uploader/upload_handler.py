"""File upload protocol: bucket request, storage upload and confirmation.

Every file goes through the same three-step Canvas upload handshake:

1. ``request_bucket`` asks the assignment for a storage destination.
2. ``upload_to_storage`` posts the bytes there and reads the ``Location`` header.
3. ``confirm_upload`` finalizes the upload and returns the durable file object.

``upload_file`` chains the steps for one path and ``upload_all`` runs one chain
per path concurrently on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import aiohttp
from pydantic import BaseModel, ValidationError
from yarl import URL

from canvas_uploader.errors import LocalFileError, ProtocolError, TransportError, UploaderError
from canvas_uploader.file_mapping import resolve_file
from canvas_uploader.schemas import UploadBucket, UploadedFileRef
from canvas_uploader.types import FileUploadOutcome, LocalFile, UploadContext

logger = logging.getLogger(__name__)

STORAGE_FILE_FIELD = "file"
ERROR_BODY_EXCERPT = 200


async def request_json(
    session: aiohttp.ClientSession,
    method: str,
    url: str | URL,
    *,
    stage: str,
    **kwargs: Any,
) -> Any:
    """Send a request and decode its JSON body.

    Args:
        session: Shared HTTP session.
        method: HTTP method.
        url: Target URL.
        stage: Pipeline stage name used in raised errors.
        **kwargs: Passed through to ``session.request``.

    Returns:
        Decoded JSON payload.

    Raises:
        TransportError: On connection failure, timeout or non-2xx status.
        ProtocolError: If the body is not valid JSON.
    """
    try:
        async with session.request(method, url, **kwargs) as response:
            if not 200 <= response.status < 300:
                body = await response.text(errors="replace")
                raise TransportError(
                    f"HTTP {response.status} from {method} {url}: {body[:ERROR_BODY_EXCERPT]}",
                    status=response.status,
                    stage=stage,
                )
            try:
                return await response.json(content_type=None)
            except ValueError as e:
                raise ProtocolError(f"Response from {method} {url} is not valid JSON", stage=stage) from e
    except (aiohttp.ClientError, TimeoutError) as e:
        raise TransportError(f"{method} {url} failed: {e!r}", stage=stage) from e


def parse_model[ModelT: BaseModel](model: type[ModelT], payload: Any, stage: str) -> ModelT:
    """Validate a decoded payload, mapping validation failures to ProtocolError."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        fields = ", ".join(".".join(str(loc) for loc in err["loc"]) or "<root>" for err in e.errors())
        raise ProtocolError(f"Unexpected {model.__name__} response (invalid: {fields})", stage=stage) from e


async def request_bucket(
    session: aiohttp.ClientSession,
    ctx: UploadContext,
    file_name: str,
    size_bytes: int,
) -> UploadBucket:
    """Ask Canvas for a storage destination for one submission file.

    Args:
        session: Shared HTTP session.
        ctx: Upload target.
        file_name: Base name of the file.
        size_bytes: File size in bytes.

    Returns:
        The upload bucket (storage URL plus params to echo back).

    Raises:
        TransportError: If the request fails.
        ProtocolError: If the response lacks a valid upload_url/upload_params.
    """
    url = f"{ctx.assignment_api_url}/submissions/self/files"
    with aiohttp.MultipartWriter("form-data") as writer:
        for name, value in (("name", Path(file_name).name), ("size", str(size_bytes))):
            part = writer.append(value)
            part.set_content_disposition("form-data", name=name)

    logger.debug("Requesting upload bucket for %s (%d bytes)", file_name, size_bytes)
    payload = await request_json(session, "POST", url, stage="bucket", headers=ctx.auth_headers, data=writer)
    return parse_model(UploadBucket, payload, stage="bucket")


async def upload_to_storage(session: aiohttp.ClientSession, bucket: UploadBucket, file: LocalFile) -> str:
    """Post the file content to the storage backend.

    The bucket params are sent first, in order, followed by the file under the
    ``file`` field. Redirects are not followed: the ``Location`` header is the
    confirmation URL.

    Args:
        session: Shared HTTP session.
        bucket: Destination returned by ``request_bucket``.
        file: Resolved local file; its content is read exactly once.

    Returns:
        Absolute confirmation URL.

    Raises:
        LocalFileError: If the file cannot be opened.
        TransportError: On network failure or an error status.
        ProtocolError: If the Location header is missing or malformed.
    """
    upload_url = str(bucket.upload_url)
    try:
        stream = file.open()
    except OSError as e:
        raise LocalFileError(f"Cannot read {file.path}: {e}", path=file.path, stage="storage") from e

    with stream:
        form = aiohttp.FormData()
        for key, value in bucket.upload_params.items():
            form.add_field(key, value)
        content_type = mimetypes.guess_type(file.name)[0] or "application/octet-stream"
        form.add_field(STORAGE_FILE_FIELD, stream, filename=file.name, content_type=content_type)

        logger.debug("Uploading %s to storage", file.name)
        try:
            # No bearer token here: the storage URL is authorized by upload_params.
            async with session.post(upload_url, data=form, allow_redirects=False) as response:
                if response.status >= 400:
                    body = await response.text(errors="replace")
                    raise TransportError(
                        f"HTTP {response.status} from storage: {body[:ERROR_BODY_EXCERPT]}",
                        status=response.status,
                        stage="storage",
                    )
                location = response.headers.get("Location")
                response_url = response.url
        except (aiohttp.ClientError, TimeoutError) as e:
            raise TransportError(f"POST {upload_url} failed: {e!r}", stage="storage") from e

    if not location:
        raise ProtocolError("Storage response has no Location header", stage="storage")
    try:
        resolved = response_url.join(URL(location))
    except ValueError as e:
        raise ProtocolError(f"Malformed Location header: {location!r}", stage="storage") from e
    if resolved.scheme not in ("http", "https") or not resolved.host:
        raise ProtocolError(f"Malformed Location header: {location!r}", stage="storage")
    return str(resolved)


async def confirm_upload(session: aiohttp.ClientSession, ctx: UploadContext, location: str) -> UploadedFileRef:
    """Finalize a storage upload and return the Canvas file object.

    Args:
        session: Shared HTTP session.
        ctx: Upload target (only the token is used).
        location: Confirmation URL from ``upload_to_storage``.

    Returns:
        The uploaded file reference.

    Raises:
        TransportError: If the request fails.
        ProtocolError: If the response is not a valid file object.
    """
    headers = {**ctx.auth_headers, "Content-Length": "0"}
    logger.debug("Confirming upload at %s", location)
    payload = await request_json(session, "POST", URL(location, encoded=True), stage="confirm", headers=headers)
    return parse_model(UploadedFileRef, payload, stage="confirm")


async def upload_file(session: aiohttp.ClientSession, ctx: UploadContext, path: Path | str) -> UploadedFileRef:
    """Run the full upload handshake for a single file.

    Args:
        session: Shared HTTP session.
        ctx: Upload target.
        path: Local file path.

    Returns:
        The uploaded file reference.

    Raises:
        UploaderError: The first failing step's error, with the path attached.
    """
    try:
        file = resolve_file(path)
        bucket = await request_bucket(session, ctx, file.name, file.size_bytes)
        location = await upload_to_storage(session, bucket, file)
        ref = await confirm_upload(session, ctx, location)
    except UploaderError as e:
        e.with_context(path=path)
        raise

    logger.info("Uploaded %s as file %d", Path(path).name, ref.id)
    return ref


async def upload_file_outcome(
    session: aiohttp.ClientSession,
    ctx: UploadContext,
    path: Path,
) -> FileUploadOutcome:
    """Same as ``upload_file`` but reports failure as a tagged outcome.

    Errors outside the uploader taxonomy are wrapped in ``UploaderError`` so
    that one broken pipeline never cancels its siblings.
    """
    try:
        ref = await upload_file(session, ctx, path)
    except UploaderError as e:
        logger.warning("Upload of %s failed: %s", path, e)
        return FileUploadOutcome(path=path, error=e)
    except Exception as e:
        logger.exception("Unexpected error while uploading %s", path)
        error = UploaderError(f"Unexpected error: {e!r}", path=path)
        error.__cause__ = e
        return FileUploadOutcome(path=path, error=error)
    return FileUploadOutcome(path=path, ref=ref)


async def upload_outcomes(
    session: aiohttp.ClientSession,
    ctx: UploadContext,
    paths: Iterable[Path | str],
    *,
    max_concurrency: int | None = None,
    on_complete: Callable[[FileUploadOutcome], None] | None = None,
) -> list[FileUploadOutcome]:
    """Upload every path concurrently and wait for all of them to finish.

    Failed uploads do not cancel their siblings. Outcomes are returned in the
    order of ``paths`` (duplicates collapsed), not in completion order.

    Args:
        session: Shared HTTP session.
        ctx: Upload target.
        paths: Local file paths.
        max_concurrency: Optional cap on pipelines in flight (default: unbounded).
        on_complete: Called with each outcome as soon as its pipeline finishes.

    Returns:
        One outcome per distinct path, in input order.
    """
    ordered = list(dict.fromkeys(Path(p) for p in paths))
    semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None

    async def run_one(path: Path) -> FileUploadOutcome:
        if semaphore is None:
            outcome = await upload_file_outcome(session, ctx, path)
        else:
            async with semaphore:
                outcome = await upload_file_outcome(session, ctx, path)
        if on_complete is not None:
            try:
                on_complete(outcome)
            except Exception:
                logger.exception("Completion hook failed for %s", path)
        return outcome

    async with asyncio.TaskGroup() as group:
        tasks = [group.create_task(run_one(path)) for path in ordered]
    return [task.result() for task in tasks]


def collect_refs(outcomes: list[FileUploadOutcome]) -> list[UploadedFileRef]:
    """Return the refs of successful outcomes, or raise the earliest failure.

    Args:
        outcomes: Outcomes in input order.

    Returns:
        File references in input order.

    Raises:
        UploaderError: The error of the first failed outcome in input order.
    """
    failures = [outcome.error for outcome in outcomes if outcome.error is not None]
    if failures:
        if len(failures) > 1:
            logger.info("%d of %d uploads failed", len(failures), len(outcomes))
        raise failures[0]
    return [outcome.ref for outcome in outcomes if outcome.ref is not None]


async def upload_all(
    session: aiohttp.ClientSession,
    ctx: UploadContext,
    paths: Iterable[Path | str],
    *,
    max_concurrency: int | None = None,
) -> list[UploadedFileRef]:
    """Upload every path concurrently; all must succeed.

    Returns:
        File references in the order of ``paths``.

    Raises:
        UploaderError: The failure of the earliest failed path, once every
            upload has finished.
    """
    outcomes = await upload_outcomes(session, ctx, paths, max_concurrency=max_concurrency)
    return collect_refs(outcomes)
