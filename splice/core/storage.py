"""
File storage collaborators.

The engine never touches the filesystem directly; it goes through a
FileStore. LocalFileStore is the on-disk implementation used by the tool
layer and the CLI:
- relative paths resolve against a workspace root
- paths that escape the root are refused (PathSecurityError)
- files above max_file_size are refused before being read
- reads disable newline translation so CRLF files round-trip unchanged
- writes go through atomic_write
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from .atomic_write import atomic_write
from .base import PathSecurityError

logger = logging.getLogger(__name__)

# Largest file the engine will load into memory (10 MB)
MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024

PathLike = Union[str, Path]


class FileTooLargeError(OSError):
    """File exceeds the configured size limit."""
    pass


class FileStore(ABC):
    """Read/write interface the engine consumes."""

    @abstractmethod
    def identity(self, path: PathLike) -> str:
        """Canonical key for a path (two spellings of one file map to one key)."""
        pass

    @abstractmethod
    def exists(self, path: PathLike) -> bool:
        pass

    @abstractmethod
    def mtime(self, path: PathLike) -> float:
        pass

    @abstractmethod
    def read_text(self, path: PathLike) -> str:
        pass

    @abstractmethod
    def write_text(self, path: PathLike, content: str) -> None:
        pass


def validate_path_contained(path: Path, container: Path) -> Path:
    """
    Resolve a path and make sure it stays inside container.

    Works for paths that do not exist yet (file creation).

    Args:
        path: Absolute path, or relative to container
        container: Workspace root

    Returns:
        Resolved absolute path

    Raises:
        PathSecurityError: Path contains a null byte or escapes the container
    """
    if '\x00' in str(path):
        raise PathSecurityError(f"Path contains null byte: {path!r}")

    try:
        resolved_container = container.resolve()
    except (OSError, RuntimeError) as e:
        raise PathSecurityError(f"Invalid workspace root {container}: {e}") from e

    candidate = path if path.is_absolute() else resolved_container / path
    try:
        resolved = candidate.resolve()
    except (OSError, RuntimeError) as e:
        raise PathSecurityError(f"Failed to resolve path {path}: {e}") from e

    try:
        resolved.relative_to(resolved_container)
    except ValueError:
        raise PathSecurityError(
            f"Path {resolved} is outside workspace root {resolved_container}"
        ) from None

    return resolved


class LocalFileStore(FileStore):
    """
    FileStore backed by the local filesystem.

    Usage:
        store = LocalFileStore(Path.cwd())
        text = store.read_text("src/app.ts")
    """

    def __init__(
        self,
        root: Optional[PathLike] = None,
        max_file_size: int = MAX_FILE_SIZE_BYTES,
        backup_dir: Optional[PathLike] = None,
        encoding: str = 'utf-8'
    ):
        """
        Args:
            root: Workspace root (default: current directory)
            max_file_size: Refuse to read files larger than this (bytes)
            backup_dir: If set, existing files are backed up here before writes
            encoding: Text encoding for reads and writes
        """
        self.root = Path(root if root is not None else Path.cwd()).resolve()
        self.max_file_size = max_file_size
        self.backup_dir = Path(backup_dir) if backup_dir else None
        self.encoding = encoding

    def resolve(self, path: PathLike) -> Path:
        """Resolve a path against the root, refusing escapes."""
        return validate_path_contained(Path(path), self.root)

    def identity(self, path: PathLike) -> str:
        return str(self.resolve(path))

    def exists(self, path: PathLike) -> bool:
        return self.resolve(path).is_file()

    def mtime(self, path: PathLike) -> float:
        return self.resolve(path).stat().st_mtime

    def read_text(self, path: PathLike) -> str:
        """
        Read a file with the size limit applied.

        Raises:
            FileNotFoundError: File is absent
            FileTooLargeError: File exceeds max_file_size
        """
        resolved = self.resolve(path)
        size = resolved.stat().st_size
        if size > self.max_file_size:
            raise FileTooLargeError(
                f"File too large: {resolved} is {size:,} bytes "
                f"(max: {self.max_file_size:,} bytes)"
            )
        with open(resolved, 'r', encoding=self.encoding, newline='') as f:
            return f.read()

    def write_text(self, path: PathLike, content: str) -> None:
        resolved = self.resolve(path)
        atomic_write(resolved, content, encoding=self.encoding, backup_dir=self.backup_dir)
        logger.debug("Wrote %d chars to %s", len(content), resolved)
