"""
Atomic file writing.

A composed file is always persisted as one full-content replace, so an
interrupted or failed write never leaves a half-edited file behind:
- content goes to a temp file in the target's directory
- the temp file is fsynced, then renamed over the target (atomic on POSIX)
- the target's permission bits are carried over

Usage:
    from splice.core.atomic_write import atomic_write

    atomic_write(Path("src/app.ts"), text)
    atomic_write(Path("src/app.ts"), text, backup_dir=Path(".splice/backups"))
"""

import errno
import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class AtomicWriteError(OSError):
    """Error during an atomic write. Nothing on disk was modified."""
    pass


def _cleanup(temp_path: Optional[Path]) -> None:
    if temp_path and temp_path.exists():
        try:
            temp_path.unlink()
        except OSError:
            logger.debug("Could not remove temp file %s", temp_path)


def backup_file(file_path: Path, backup_dir: Path) -> Path:
    """
    Copy a file into backup_dir with a timestamp suffix.

    Returns:
        Path of the backup copy
    """
    backup_dir = Path(backup_dir)
    backup_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    backup_path = backup_dir / f"{file_path.name}.{timestamp}.bak"
    shutil.copy2(file_path, backup_path)
    return backup_path


def atomic_write(
    file_path: Path,
    content: str,
    encoding: str = 'utf-8',
    backup_dir: Optional[Path] = None
) -> bool:
    """
    Write a file atomically.

    Newlines are written untranslated: the caller decides between LF and
    CRLF.

    Args:
        file_path: Path to file to write (parent directories are created)
        content: Full new content
        encoding: Text encoding (default: utf-8)
        backup_dir: If provided, back up an existing file there first

    Returns:
        True if the write succeeded

    Raises:
        AtomicWriteError: Disk full, permission denied or any other failure
    """
    file_path = Path(file_path)
    temp_path = None

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)

        if backup_dir and file_path.exists():
            backup_path = backup_file(file_path, backup_dir)
            logger.debug("Backed up %s to %s", file_path, backup_path)

        temp_fd, temp_path_str = tempfile.mkstemp(
            prefix=f".tmp_{file_path.name}_",
            dir=file_path.parent,
            suffix=".tmp"
        )
        temp_path = Path(temp_path_str)

        try:
            with os.fdopen(temp_fd, 'w', encoding=encoding, newline='') as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            if e.errno == errno.ENOSPC:
                raise AtomicWriteError(
                    f"Disk full: Cannot write to {file_path}. "
                    f"Free up space and try again."
                ) from e
            elif e.errno == errno.EACCES:
                raise AtomicWriteError(
                    f"Permission denied: Cannot write to {file_path}. "
                    f"Check file/directory permissions."
                ) from e
            raise AtomicWriteError(f"Write error for {file_path}: {e}") from e

        if file_path.exists():
            try:
                os.chmod(temp_path, file_path.stat().st_mode)
            except OSError:
                logger.debug("Could not copy permissions onto %s", temp_path)

        os.replace(temp_path, file_path)
        return True

    except AtomicWriteError:
        _cleanup(temp_path)
        raise

    except Exception as e:
        _cleanup(temp_path)
        raise AtomicWriteError(f"Failed to write {file_path}: {e}") from e
