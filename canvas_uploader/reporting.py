"""Report generation utilities for YAML and CSV formats."""

from __future__ import annotations

import csv
from pathlib import Path

import yaml

from canvas_uploader.types import FileReport, FileUploadOutcome, RunReport, UploadContext

YAML_SUFFIXES = (".yaml", ".yml")
CSV_SUFFIXES = (".csv",)
REPORT_SUFFIXES = YAML_SUFFIXES + CSV_SUFFIXES


def build_report(
    ctx: UploadContext,
    outcomes: list[FileUploadOutcome],
    submitted: bool,
    submission_error: str | None = None,
) -> RunReport:
    """Summarize a run for saving.

    Args:
        ctx: Upload target.
        outcomes: Per-file outcomes in input order.
        submitted: Whether the submission was accepted.
        submission_error: Error message of the submit step, if it failed.

    Returns:
        The run report.
    """
    files: list[FileReport] = []
    for outcome in outcomes:
        error = outcome.error
        files.append(
            FileReport(
                path=str(outcome.path),
                size=outcome.ref.size if outcome.ref else None,
                file_id=outcome.ref.id if outcome.ref else None,
                stage=error.stage if error else None,
                error=error.message if error else None,
            )
        )
    return RunReport(
        course_id=ctx.course_id,
        assignment_id=ctx.assignment_id,
        submitted=submitted,
        submission_error=submission_error,
        files=files,
    )


def _save_report_as_yaml(report: RunReport, report_path: Path) -> None:
    """Save run report to YAML file.

    Raises:
        OSError: If report cannot be written.
    """
    with open(report_path, "w") as f:
        yaml.dump(dict(report), f, default_flow_style=False, sort_keys=False)
    print(f"Wrote upload report to {report_path} (YAML format)")


def _save_report_as_csv(report: RunReport, report_path: Path) -> None:
    """Save run report to CSV file, one row per file.

    Raises:
        OSError: If report cannot be written.
    """
    with open(report_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)

        writer.writerow(
            [
                "Path",
                "Size",
                "File ID",
                "Failed Stage",
                "Error",
                "Course ID",
                "Assignment ID",
                "Submitted",
            ]
        )

        for entry in report["files"]:
            writer.writerow(
                [
                    entry["path"],
                    "" if entry["size"] is None else entry["size"],
                    "" if entry["file_id"] is None else entry["file_id"],
                    entry["stage"] or "",
                    entry["error"] or "",
                    report["course_id"],
                    report["assignment_id"],
                    "yes" if report["submitted"] else "no",
                ]
            )

    print(f"Wrote upload report to {report_path} (CSV format)")


def save_report(report: RunReport, report_path: Path) -> None:
    """Save run report to file (YAML or CSV based on extension).

    Args:
        report: Run report dictionary.
        report_path: Path to save the report.

    Raises:
        OSError: If report cannot be written.
        ValueError: If file extension is not supported.
    """
    suffix = report_path.suffix.lower()

    if suffix in YAML_SUFFIXES:
        _save_report_as_yaml(report, report_path)
    elif suffix in CSV_SUFFIXES:
        _save_report_as_csv(report, report_path)
    else:
        raise ValueError(f"Unsupported report file extension: {suffix}. Supported formats: .yaml, .yml, .csv")
