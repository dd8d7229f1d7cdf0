"""
File operation utilities
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Union

from simscan.core.errors import InvalidPath

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png')


@dataclass(frozen=True)
class FileInfo:
    """A candidate image; identity is its path"""
    path: str
    size: int = field(compare=False)
    date: int = field(compare=False)  # creation time, ms since epoch

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> 'FileInfo':
        path = Path(path).absolute()
        stat = path.stat()
        created = getattr(stat, 'st_birthtime', stat.st_ctime)
        return cls(path=str(path), size=stat.st_size, date=int(created * 1000))

    @property
    def name(self) -> str:
        return Path(self.path).name

    def to_dict(self) -> dict:
        return {'path': self.path, 'size': self.size, 'date': self.date}


def validate_directory(directory: Union[str, Path]) -> Path:
    """
    Resolve ``directory`` and make sure it can be listed.

    Raises:
        InvalidPath: missing, not a directory, or not readable
    """
    dir_path = Path(directory).expanduser().absolute()

    if not dir_path.exists():
        raise InvalidPath(directory, "does not exist")
    if not dir_path.is_dir():
        raise InvalidPath(directory, "not a directory")
    if not os.access(dir_path, os.R_OK | os.X_OK):
        raise InvalidPath(directory, "permission denied")

    return dir_path


def _normalize_extensions(extensions: Optional[Iterable[str]]) -> set:
    extensions = extensions or DEFAULT_IMAGE_EXTENSIONS
    return {e.lower() if e.startswith('.') else f'.{e.lower()}' for e in extensions}


def list_images(directory: Union[str, Path],
                extensions: Optional[Iterable[str]] = None) -> List[FileInfo]:
    """
    Recursively list image files under ``directory``.

    An unreadable root raises; an unreadable subdirectory or file is
    logged and skipped.

    Raises:
        InvalidPath: the root itself cannot be listed
    """
    root = validate_directory(directory)
    wanted = _normalize_extensions(extensions)
    files = []

    def on_error(error: OSError):
        if Path(error.filename or '') == root:
            raise InvalidPath(directory, error.strerror or str(error))
        logger.error("error reading folder content %s: %s", error.filename, error)

    for current, _, names in os.walk(root, onerror=on_error):
        for name in names:
            if os.path.splitext(name)[1].lower() not in wanted:
                continue
            file_path = os.path.join(current, name)
            try:
                files.append(FileInfo.from_path(file_path))
            except OSError as e:
                logger.error("unable to stat %s: %s", file_path, e)

    return files


def format_file_size(size_bytes: int) -> str:
    """Format file size in human readable format"""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.2f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.2f} PB"
