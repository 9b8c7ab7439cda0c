"""Pending operations and stored inode records of the simulated filesystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import PurePosixPath
from typing import Optional, Union

_ZERO = timedelta(0)

DEFAULT_FILE_MODE = 0o644
DEFAULT_DIR_MODE = 0o755


def _as_path(value: Union[str, PurePosixPath]) -> PurePosixPath:
    return value if isinstance(value, PurePosixPath) else PurePosixPath(value)


def _non_negative(name: str, value: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an integer")
    if value < 0:
        raise ValueError(f"{name} must not be negative")
    return value


class _PathOp:
    """Coerces the path-like fields of an operation to `PurePosixPath`."""

    _path_fields: tuple = ("path",)

    def __post_init__(self) -> None:
        for name in self._path_fields:
            object.__setattr__(self, name, _as_path(getattr(self, name)))


@dataclass(frozen=True)
class CreateFile(_PathOp):
    """Create a file; durable once the parent directory is synced."""

    path: PurePosixPath
    time: timedelta
    mode: int = DEFAULT_FILE_MODE


@dataclass(frozen=True)
class CreateDir(_PathOp):
    """Create a directory; durable once the parent directory is synced."""

    path: PurePosixPath
    time: timedelta
    mode: int = DEFAULT_DIR_MODE


@dataclass(frozen=True)
class CreateSymlink(_PathOp):
    """Create a symbolic link; durable once the parent directory is synced."""

    _path_fields = ("path", "target")

    path: PurePosixPath
    target: PurePosixPath
    time: timedelta


@dataclass(frozen=True)
class CreateHardLink(_PathOp):
    """Create a hard link; durable once the parent directory is synced."""

    _path_fields = ("path", "target")

    path: PurePosixPath
    target: PurePosixPath
    time: timedelta


@dataclass(frozen=True)
class Write(_PathOp):
    """Write bytes at an offset; durable once the file is synced."""

    path: PurePosixPath
    offset: int
    data: bytes
    time: timedelta

    def __post_init__(self) -> None:
        super().__post_init__()
        _non_negative("offset", self.offset)
        object.__setattr__(self, "data", bytes(self.data))


@dataclass(frozen=True)
class SetLen(_PathOp):
    """Truncate or extend a file; durable once the file is synced."""

    path: PurePosixPath
    length: int
    time: timedelta

    def __post_init__(self) -> None:
        super().__post_init__()
        _non_negative("length", self.length)


@dataclass(frozen=True)
class SetPermissions(_PathOp):
    """Change the permission bits of a file or directory."""

    path: PurePosixPath
    mode: int
    time: timedelta


@dataclass(frozen=True)
class Rename(_PathOp):
    """Move an entry; durable once the affected directories are synced."""

    _path_fields = ("source", "target")

    source: PurePosixPath
    target: PurePosixPath


@dataclass(frozen=True)
class RemoveFile(_PathOp):
    """Unlink a file or symlink; durable once the parent directory is synced."""

    path: PurePosixPath


@dataclass(frozen=True)
class RemoveDir(_PathOp):
    """Remove a directory; durable once the parent directory is synced."""

    path: PurePosixPath


PendingOp = Union[
    CreateFile,
    CreateDir,
    CreateSymlink,
    CreateHardLink,
    Write,
    SetLen,
    SetPermissions,
    Rename,
    RemoveFile,
    RemoveDir,
]


@dataclass
class FileData:
    """Stored file inode: content, timestamps, mode and link count.

    Modification and change times default to the creation time. The
    content is always held in a private `bytearray`, so
    `dataclasses.replace` yields an independent copy.
    """

    crtime: timedelta = _ZERO
    mode: int = DEFAULT_FILE_MODE
    content: bytearray = field(default_factory=bytearray)
    mtime: Optional[timedelta] = None
    ctime: Optional[timedelta] = None
    nlink: int = 1

    def __post_init__(self) -> None:
        self.content = bytearray(self.content)
        if self.mtime is None:
            self.mtime = self.crtime
        if self.ctime is None:
            self.ctime = self.crtime
        _non_negative("nlink", self.nlink)


@dataclass
class DirData:
    """Stored directory inode: timestamps and mode."""

    crtime: timedelta = _ZERO
    mode: int = DEFAULT_DIR_MODE
    mtime: Optional[timedelta] = None
    ctime: Optional[timedelta] = None

    def __post_init__(self) -> None:
        if self.mtime is None:
            self.mtime = self.crtime
        if self.ctime is None:
            self.ctime = self.crtime


@dataclass
class SymlinkData:
    """Stored symbolic link: target and timestamps."""

    target: PurePosixPath
    crtime: timedelta = _ZERO
    mtime: Optional[timedelta] = None
    ctime: Optional[timedelta] = None

    def __post_init__(self) -> None:
        self.target = _as_path(self.target)
        if self.mtime is None:
            self.mtime = self.crtime
        if self.ctime is None:
            self.ctime = self.crtime