"""File-system helpers used by the scan and merge flows."""

from __future__ import annotations

import logging
import os
import pathlib
from typing import Iterable, List, Tuple

from . import constants
from .records import FileRecord, Skipped

logger = logging.getLogger(__name__)


def ensure_dir(path: str) -> str:
    pathlib.Path(path).mkdir(parents=True, exist_ok=True)
    return path


def sanitize_filename(name: str) -> str:
    return constants.UNSAFE_FILENAME_CHARS.sub("_", name or "")


def has_ext(name: str, exts: Iterable[str]) -> bool:
    return os.path.splitext(name)[1].lower() in exts


def file_record(path: str) -> FileRecord:
    st = os.stat(path)
    return FileRecord(
        path=os.path.abspath(path),
        name=os.path.basename(path),
        size=st.st_size,
        modified_time=st.st_mtime,
    )


def newest_first(records: Iterable[FileRecord]) -> List[FileRecord]:
    """Sort by modification time descending; equal times fall back to name, then path."""
    return sorted(records, key=lambda r: (-r.modified_time, r.name, r.path))


def list_files(directory: str, exts: Iterable[str]) -> List[FileRecord]:
    """Files directly inside directory whose extension is in exts. Raises OSError."""
    exts = tuple(exts)
    found: List[FileRecord] = []
    with os.scandir(directory) as entries:
        for entry in entries:
            if not entry.is_file() or not has_ext(entry.name, exts):
                continue
            found.append(file_record(entry.path))
    return found


def walk_files(root: str, exts: Iterable[str]) -> Tuple[List[FileRecord], List[Skipped]]:
    """Recursively collect matching files; unreadable directories are skipped.

    Symlinked directories are not descended into.
    """
    exts = tuple(exts)
    found: List[FileRecord] = []
    skipped: List[Skipped] = []
    pending = [root]
    while pending:
        current = pending.pop()
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            logger.warning("Cannot read directory %s: %s", current, exc)
            skipped.append(Skipped(current, f"cannot read directory: {exc}"))
            continue
        subdirs = []
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    subdirs.append(entry.path)
                elif entry.is_file() and has_ext(entry.name, exts):
                    found.append(file_record(entry.path))
            except OSError as exc:
                logger.warning("Cannot stat %s: %s", entry.path, exc)
                skipped.append(Skipped(entry.path, f"cannot stat: {exc}"))
        pending.extend(reversed(subdirs))
    return found, skipped


def publish_exclusive(tmp_path: str, target: str) -> None:
    """Move a finished temp file to target, failing if target already exists."""
    try:
        os.link(tmp_path, target)
    except FileExistsError:
        raise
    except OSError:
        # no hard links on this filesystem
        if os.path.exists(target):
            raise FileExistsError(target)
        os.replace(tmp_path, target)
        return
    os.unlink(tmp_path)
