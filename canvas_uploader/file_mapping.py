"""Local file resolution and pattern expansion utilities."""

from __future__ import annotations

import errno
import glob
import stat
from pathlib import Path

from canvas_uploader.errors import LocalFileError, NotAFileError, NotFoundError
from canvas_uploader.types import LocalFile


def resolve_file(path: Path | str) -> LocalFile:
    """Confirm that a path names a regular file and capture its size.

    Args:
        path: Path to the file.

    Returns:
        LocalFile whose size is the on-disk size at resolution time.

    Raises:
        NotFoundError: If the path does not exist.
        NotAFileError: If the path exists but is not a regular file.
        LocalFileError: If the path cannot be inspected (e.g. permission denied).
    """
    path = Path(path)
    try:
        file_stat = path.stat()
    except OSError as e:
        # ENOTDIR: a parent component is a regular file, so the path cannot exist.
        if e.errno in (errno.ENOENT, errno.ENOTDIR):
            raise NotFoundError(f"File {path} does not exist", path=path, stage="resolve") from e
        raise LocalFileError(f"Cannot access {path}: {e.strerror or e}", path=path, stage="resolve") from e

    if not stat.S_ISREG(file_stat.st_mode):
        raise NotAFileError(f"File {path} is not a file", path=path, stage="resolve")

    return LocalFile(path=path, size_bytes=file_stat.st_size)


def expand_pattern(pattern: str, base_dir: Path | None = None) -> list[Path]:
    """Expand a glob pattern into the regular files it matches.

    Args:
        pattern: Glob pattern (e.g., 'build/*.pdf' or 'src/**/*.py').
        base_dir: Directory the pattern is relative to (default: current directory).

    Returns:
        Sorted list of matching file paths. Directories are skipped.

    Raises:
        ValueError: If base_dir doesn't exist or is not a directory.
    """
    if base_dir is not None:
        if not base_dir.exists():
            raise ValueError(f"Base directory does not exist: {base_dir}")
        if not base_dir.is_dir():
            raise ValueError(f"Base directory is not a directory: {base_dir}")

    matches = glob.glob(pattern, root_dir=base_dir, recursive=True)
    root = base_dir or Path()
    return sorted({root / match for match in matches if (root / match).is_file()})
