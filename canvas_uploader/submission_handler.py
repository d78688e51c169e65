"""Submission handling: registering uploaded files as an assignment submission."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from urllib.parse import urlencode

import aiohttp
from yarl import URL

from canvas_uploader.errors import ProtocolError, SubmissionError, TransportError
from canvas_uploader.schemas import Submission, UploadedFileRef
from canvas_uploader.types import UploadContext
from canvas_uploader.upload_handler import parse_model, request_json

logger = logging.getLogger(__name__)

SUBMISSION_TYPE = "online_upload"


def build_submission_query(file_refs: Sequence[UploadedFileRef]) -> list[tuple[str, str]]:
    """Build the query parameters of an online upload submission.

    Args:
        file_refs: Uploaded files, in the order they should be submitted.

    Returns:
        Query pairs: the submission type followed by one file id per ref.
    """
    query = [("submission[submission_type]", SUBMISSION_TYPE)]
    query.extend(("submission[file_ids][]", str(ref.id)) for ref in file_refs)
    return query


def submission_url(ctx: UploadContext, file_refs: Sequence[UploadedFileRef]) -> str:
    """Return the submission endpoint with its query string, brackets left unescaped."""
    query = urlencode(build_submission_query(file_refs), safe="[]")
    return f"{ctx.assignment_api_url}/submissions?{query}"


async def submit(
    session: aiohttp.ClientSession,
    ctx: UploadContext,
    file_refs: Sequence[UploadedFileRef],
) -> Submission:
    """Submit every uploaded file to the assignment in a single request.

    Args:
        session: Shared HTTP session.
        ctx: Upload target.
        file_refs: Non-empty sequence of uploaded files.

    Returns:
        The submission as reported by Canvas (fields may be missing).

    Raises:
        ValueError: If file_refs is empty.
        SubmissionError: If the request fails or is not accepted.
    """
    if not file_refs:
        raise ValueError("At least one uploaded file is required to submit")

    url = submission_url(ctx, file_refs)
    logger.debug("Submitting %d file(s) to assignment %d", len(file_refs), ctx.assignment_id)
    try:
        payload = await request_json(session, "POST", URL(url, encoded=True), stage="submit", headers=ctx.auth_headers)
        return parse_model(Submission, payload, stage="submit")
    except TransportError as e:
        raise SubmissionError(e.message, status=e.status) from e
    except ProtocolError:
        # The status was a success; the body is informational only.
        logger.debug("Submission accepted with an unrecognized response body")
        return Submission()
