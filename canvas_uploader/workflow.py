"""High-level workflow orchestration for submission uploading."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import aiohttp
from tqdm import tqdm

from canvas_uploader.canvas_queries import get_course
from canvas_uploader.configs import Config
from canvas_uploader.errors import NoFilesMatchedError, SubmissionError, UploaderError
from canvas_uploader.file_mapping import expand_pattern
from canvas_uploader.reporting import build_report, save_report
from canvas_uploader.schemas import Submission
from canvas_uploader.submission_handler import submit
from canvas_uploader.types import FileUploadOutcome, UploadContext
from canvas_uploader.upload_handler import collect_refs, upload_outcomes

logger = logging.getLogger(__name__)


def _save_run_report(
    config: Config,
    ctx: UploadContext,
    outcomes: list[FileUploadOutcome],
    submitted: bool,
    submission_error: str | None = None,
) -> None:
    """Save the run report if a report path is configured.

    A report that cannot be written is logged and never replaces the outcome
    of the run, which may already include an accepted submission.
    """
    if not config.report_path:
        return
    try:
        save_report(build_report(ctx, outcomes, submitted, submission_error), config.report_path)
    except (OSError, ValueError) as e:
        logger.warning("Could not write report to %s: %s", config.report_path, e)


async def _upload_with_progress(
    session: aiohttp.ClientSession,
    ctx: UploadContext,
    paths: list[Path],
    max_concurrency: int | None,
) -> list[FileUploadOutcome]:
    """Upload all files concurrently behind a progress bar.

    Args:
        session: Shared HTTP session.
        ctx: Upload target.
        paths: Files to upload.
        max_concurrency: Optional cap on concurrent uploads.

    Returns:
        Per-file outcomes in the order of ``paths``.
    """
    with tqdm(total=len(paths), desc="Uploading files", unit="file") as pbar:

        def on_complete(outcome: FileUploadOutcome) -> None:
            pbar.update(1)
            if not outcome.ok:
                pbar.set_description(f"Failed: {outcome.path.name}")

        return await upload_outcomes(
            session,
            ctx,
            paths,
            max_concurrency=max_concurrency,
            on_complete=on_complete,
        )


async def run_async(config: Config) -> Submission:
    """Upload every matching file and submit them to the assignment.

    Args:
        config: Validated configuration.

    Returns:
        The accepted submission.

    Raises:
        NoFilesMatchedError: If the pattern matches no file.
        CourseNotFoundError: If the course is not visible to the token.
        UploaderError: The earliest per-file failure; nothing is submitted.
        SubmissionError: If the final submission is rejected.
    """
    ctx = config.canvas.to_context()

    paths = expand_pattern(config.file_pattern, config.base_dir)
    if not paths:
        raise NoFilesMatchedError(f"No files match '{config.file_pattern}'")
    print(f"Found {len(paths)} file(s) matching '{config.file_pattern}'")

    timeout = aiohttp.ClientTimeout(total=config.operational.request_timeout_seconds)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        if config.operational.verify_course:
            course = await get_course(session, ctx)
            print(f"Target: {course.name or course.id} / assignment {ctx.assignment_id}")

        outcomes = await _upload_with_progress(session, ctx, paths, config.operational.max_concurrency)

        try:
            file_refs = collect_refs(outcomes)
        except UploaderError:
            _save_run_report(config, ctx, outcomes, submitted=False)
            raise

        try:
            submission = await submit(session, ctx, file_refs)
        except SubmissionError as e:
            _save_run_report(config, ctx, outcomes, submitted=False, submission_error=str(e))
            raise

    _save_run_report(config, ctx, outcomes, submitted=True)
    print(f"✓ Submitted {len(file_refs)} file(s) to assignment {ctx.assignment_id}")
    return submission


def run(config: Config) -> Submission:
    """Main workflow function.

    Args:
        config: Validated configuration.

    Returns:
        The accepted submission.
    """
    return asyncio.run(run_async(config))
