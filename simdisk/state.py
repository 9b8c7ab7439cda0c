"""Query side of a host's simulated filesystem: stored state plus pending operations."""

from __future__ import annotations

import errno
import os
import random
from datetime import timedelta
from pathlib import PurePosixPath
from typing import Dict, List, NamedTuple, Optional, Union

from simdisk.cache import PageCache
from simdisk.config import FsConfig, IoLatency
from simdisk.records import (
    CreateDir,
    CreateFile,
    CreateHardLink,
    CreateSymlink,
    DirData,
    FileData,
    PendingOp,
    RemoveDir,
    RemoveFile,
    Rename,
    SetLen,
    SetPermissions,
    SymlinkData,
    Write,
)

PathArg = Union[str, PurePosixPath]

ROOT = PurePosixPath("/")
_EMPTY = PurePosixPath(".")
_ZERO = timedelta(0)

# Memory-speed latency for a page cache hit: the smallest step a timedelta holds.
CACHE_HIT_LATENCY = timedelta(microseconds=1)


class Timestamps(NamedTuple):
    """Creation, modification and change times of an entry."""

    crtime: timedelta
    mtime: timedelta
    ctime: timedelta


def _as_path(value: PathArg) -> PurePosixPath:
    return value if isinstance(value, PurePosixPath) else PurePosixPath(value)


def _parent(path: PurePosixPath) -> Optional[PurePosixPath]:
    """Parent of `path`, or None for a path with no parent (the root)."""
    parent = path.parent
    return None if parent == path else parent


def _not_found(path: PurePosixPath) -> FileNotFoundError:
    return FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path))


class FsState:
    """Per-host filesystem state and the queries answered from it.

    Durable inode data lives in the `persisted_*` maps; a path is reachable
    after a crash only if it is also in `synced_entries`. Operations that
    have not been synced wait in `pending`, and every query merges the two.
    """

    def __init__(self, config: Optional[FsConfig] = None) -> None:
        config = config if config is not None else FsConfig()
        self.persisted_files: Dict[PurePosixPath, FileData] = {}
        self.persisted_dirs: Dict[PurePosixPath, DirData] = {ROOT: DirData(_ZERO)}
        self.persisted_symlinks: Dict[PurePosixPath, SymlinkData] = {}
        self.synced_entries: Dict[PurePosixPath, None] = {ROOT: None}
        self.pending: List[PendingOp] = []
        self.open_handles: Dict[int, PurePosixPath] = {}
        self._next_fd = 0
        self.sync_probability: float = config.sync_probability
        self.capacity: Optional[int] = config.capacity
        self.io_error_probability: float = config.io_error_probability
        self.corruption_probability: float = config.corruption_probability
        self.block_size: Optional[int] = config.block_size
        self.io_latency: Optional[IoLatency] = config.io_latency
        self.page_cache: Optional[PageCache] = (
            PageCache(config.page_cache) if config.page_cache is not None else None
        )

    # -- resources ---------------------------------------------------------

    def calculate_latency(self, rng: random.Random, cache_hit: bool) -> timedelta:
        """Latency of one I/O operation; zero when latency is not simulated."""
        if cache_hit and self.page_cache is not None:
            return CACHE_HIT_LATENCY
        if self.io_latency is None:
            return _ZERO
        return self.io_latency.sample(rng)

    def _persisted_len(self, path: PurePosixPath) -> int:
        data = self.persisted_files.get(path)
        return len(data.content) if data is not None else 0

    def used_bytes(self) -> int:
        """Bytes used by persisted files plus growth from pending writes."""
        total = sum(len(data.content) for data in self.persisted_files.values())
        for op in self.pending:
            if isinstance(op, Write):
                end = op.offset + len(op.data)
                total += max(0, end - self._persisted_len(op.path))
            elif isinstance(op, SetLen):
                total += max(0, op.length - self._persisted_len(op.path))
        return total

    def check_space(self, additional_bytes: int) -> None:
        """Raise ENOSPC if `additional_bytes` more would exceed the capacity."""
        if self.capacity is not None and self.used_bytes() + additional_bytes > self.capacity:
            raise OSError(errno.ENOSPC, os.strerror(errno.ENOSPC))

    def alloc_fd(self) -> int:
        """Hand out the next file descriptor number."""
        fd = self._next_fd
        self._next_fd += 1
        return fd

    # -- path resolution ---------------------------------------------------

    def _resolve_persisted_path(self, path: PurePosixPath) -> PurePosixPath:
        current = path
        for op in reversed(self.pending):
            if isinstance(op, Rename) and op.target == current:
                current = op.source
        return current

    def _resolve_hardlink_target(self, path: PurePosixPath) -> Optional[PurePosixPath]:
        return next(
            (op.target for op in self.pending if isinstance(op, CreateHardLink) and op.path == path),
            None,
        )

    def _resolve_content_path(self, path: PurePosixPath) -> PurePosixPath:
        target = self._resolve_hardlink_target(path)
        if target is not None:
            return self._resolve_content_path(target)
        return self._resolve_persisted_path(path)

    def _path_renamed_to(self, source: PurePosixPath, target: PurePosixPath) -> bool:
        current = source
        for op in self.pending:
            if isinstance(op, Rename) and op.source == current:
                current = op.target
        return current == target

    def _applies_to(self, op_path: PurePosixPath, content_path: PurePosixPath) -> bool:
        return op_path == content_path or self._path_renamed_to(op_path, content_path)

    def _was_symlink_created_at(self, path: PurePosixPath) -> bool:
        return any(isinstance(op, CreateSymlink) and op.path == path for op in self.pending)

    # -- existence ---------------------------------------------------------

    def file_exists(self, path: PathArg) -> bool:
        """Whether a regular file is at `path`, counting pending operations."""
        path = _as_path(path)
        exists = path in self.persisted_files
        for op in self.pending:
            if isinstance(op, (CreateFile, CreateHardLink)) and op.path == path:
                exists = True
            elif isinstance(op, RemoveFile) and op.path == path:
                exists = False
            elif isinstance(op, Rename):
                if op.source == path:
                    exists = False
                elif op.target == path:
                    exists = True
        return exists

    def dir_exists(self, path: PathArg) -> bool:
        """Whether a directory is at `path`, counting pending operations."""
        path = _as_path(path)
        exists = path in self.persisted_dirs
        for op in self.pending:
            if isinstance(op, CreateDir) and op.path == path:
                exists = True
            elif isinstance(op, RemoveDir) and op.path == path:
                exists = False
            elif isinstance(op, Rename):
                if op.source == path:
                    if op.source in self.persisted_dirs:
                        exists = False
                elif op.target == path and op.source in self.persisted_dirs:
                    exists = True
        return exists

    def symlink_exists(self, path: PathArg) -> bool:
        """Whether a symbolic link is at `path`, counting pending operations."""
        path = _as_path(path)
        exists = path in self.persisted_symlinks
        for op in self.pending:
            if isinstance(op, CreateSymlink) and op.path == path:
                exists = True
            elif isinstance(op, RemoveFile) and op.path == path:
                exists = False
            elif isinstance(op, Rename):
                if op.source == path:
                    if op.source in self.persisted_symlinks or exists:
                        exists = False
                elif op.target == path and (
                    op.source in self.persisted_symlinks
                    or self._was_symlink_created_at(op.source)
                ):
                    exists = True
        return exists

    def parent_exists(self, path: PathArg) -> bool:
        """Whether the directory that would hold `path` exists."""
        parent = _parent(_as_path(path))
        if parent is None or parent == _EMPTY:
            return True
        return self.dir_exists(parent)

    def _dir_has_children(self, path: PurePosixPath) -> bool:
        return any(True for _ in self._children(path))

    def _children(self, path: PurePosixPath):
        for child in self.persisted_files:
            if _parent(child) == path and self.file_exists(child):
                yield child
        for child in self.persisted_dirs:
            if _parent(child) == path and self.dir_exists(child):
                yield child
        for child in self.persisted_symlinks:
            if _parent(child) == path and self.symlink_exists(child):
                yield child
        for op in self.pending:
            if isinstance(op, CreateFile) and _parent(op.path) == path:
                if self.file_exists(op.path):
                    yield op.path
            elif isinstance(op, CreateDir) and _parent(op.path) == path:
                if self.dir_exists(op.path):
                    yield op.path
            elif isinstance(op, CreateSymlink) and _parent(op.path) == path:
                if self.symlink_exists(op.path):
                    yield op.path

    # -- content -----------------------------------------------------------

    def file_len(self, path: PathArg) -> int:
        """Current length of a file, counting pending writes and truncations."""
        content_path = self._resolve_content_path(_as_path(path))
        length = self._persisted_len(content_path)
        for op in self.pending:
            if isinstance(op, Write) and self._applies_to(op.path, content_path):
                length = max(length, op.offset + len(op.data))
            elif isinstance(op, SetLen) and self._applies_to(op.path, content_path):
                length = op.length
        return length

    def read_file(self, path: PathArg, size: int, offset: int) -> bytes:
        """Read up to `size` bytes at `offset`, merging stored and pending data."""
        path = _as_path(path)
        if size <= 0:
            return b""
        file_len = self.file_len(path)
        if offset >= file_len:
            return b""
        to_read = min(size, file_len - offset)
        read_end = offset + to_read
        buf = bytearray(to_read)

        content_path = self._resolve_content_path(path)
        stored = self.persisted_files.get(content_path)
        if stored is not None:
            chunk = stored.content[offset:min(len(stored.content), read_end)]
            buf[: len(chunk)] = chunk

        for op in self.pending:
            if not (isinstance(op, Write) and self._applies_to(op.path, content_path)):
                continue
            write_end = op.offset + len(op.data)
            if op.offset < read_end and write_end > offset:
                start = max(op.offset, offset)
                stop = min(write_end, read_end)
                buf[start - offset : stop - offset] = op.data[start - op.offset : stop - op.offset]
        return bytes(buf)

    def read_link(self, path: PathArg) -> PurePosixPath:
        """Target of the symbolic link at `path`."""
        path = _as_path(path)
        original = self._resolve_persisted_path(path)
        for op in reversed(self.pending):
            if isinstance(op, CreateSymlink) and op.path == original:
                return op.target
            if isinstance(op, RemoveFile) and op.path == original:
                raise _not_found(path)
        stored = self.persisted_symlinks.get(original)
        if stored is None:
            raise _not_found(path)
        return stored.target

    # -- metadata ----------------------------------------------------------

    def file_mode(self, path: PathArg) -> Optional[int]:
        """Permission bits of a file, or None if unknown."""
        path = _as_path(path)
        for op in reversed(self.pending):
            if isinstance(op, (SetPermissions, CreateFile)) and op.path == path:
                return op.mode
        stored = self.persisted_files.get(path)
        return stored.mode if stored is not None else None

    def dir_mode(self, path: PathArg) -> Optional[int]:
        """Permission bits of a directory, or None if unknown."""
        path = _as_path(path)
        for op in reversed(self.pending):
            if isinstance(op, (SetPermissions, CreateDir)) and op.path == path:
                return op.mode
        stored = self.persisted_dirs.get(path)
        return stored.mode if stored is not None else None

    def file_nlink(self, path: PathArg) -> int:
        """Hard link count of a file; links share their target's count."""
        path = _as_path(path)
        target = self._resolve_hardlink_target(path)
        if target is not None:
            return self.file_nlink(target)
        stored = self.persisted_files.get(path)
        nlink = stored.nlink if stored is not None else 1
        return nlink + sum(
            1 for op in self.pending if isinstance(op, CreateHardLink) and op.target == path
        )

    def file_timestamps(self, path: PathArg) -> Optional[Timestamps]:
        """Timestamps of a file, or None if it has none."""
        path = _as_path(path)
        stored = self.persisted_files.get(self._resolve_persisted_path(path))
        stamps = Timestamps(stored.crtime, stored.mtime, stored.ctime) if stored else None
        for op in self.pending:
            if isinstance(op, CreateFile) and op.path == path:
                stamps = Timestamps(op.time, op.time, op.time)
            elif isinstance(op, (Write, SetLen)):
                if stamps is not None and self._applies_to(op.path, path):
                    stamps = Timestamps(stamps.crtime, op.time, op.time)
        return stamps

    def dir_timestamps(self, path: PathArg) -> Optional[Timestamps]:
        """Timestamps of a directory, or None if it has none."""
        path = _as_path(path)
        stored = self.persisted_dirs.get(path)
        stamps = Timestamps(stored.crtime, stored.mtime, stored.ctime) if stored else None
        for op in self.pending:
            if isinstance(op, CreateDir) and op.path == path:
                stamps = Timestamps(op.time, op.time, op.time)
            elif isinstance(op, (CreateFile, CreateDir)) and _parent(op.path) == path:
                if stamps is not None:
                    stamps = Timestamps(stamps.crtime, op.time, op.time)
            elif isinstance(op, (RemoveFile, RemoveDir)) and _parent(op.path) == path:
                if stamps is not None:
                    stamps = Timestamps(stamps.crtime, stamps.mtime, stamps.mtime)
            elif isinstance(op, Rename) and path in (_parent(op.source), _parent(op.target)):
                if stamps is not None:
                    stamps = Timestamps(stamps.crtime, stamps.mtime, stamps.mtime)
        return stamps

    def symlink_timestamps(self, path: PathArg) -> Optional[Timestamps]:
        """Timestamps of a symbolic link, or None if it has none."""
        path = _as_path(path)
        stored = self.persisted_symlinks.get(path)
        stamps = Timestamps(stored.crtime, stored.mtime, stored.ctime) if stored else None
        for op in self.pending:
            if isinstance(op, CreateSymlink) and op.path == path:
                stamps = Timestamps(op.time, op.time, op.time)
        return stamps

    def dir_entries(self, path: PathArg) -> List[PurePosixPath]:
        """Sorted paths of the files, directories and symlinks directly in `path`."""
        path = _as_path(path)
        entries = set(self._children(path))
        for op in self.pending:
            if isinstance(op, Rename) and _parent(op.target) == path:
                target = op.target
                if self.file_exists(target) or self.dir_exists(target) or self.symlink_exists(target):
                    entries.add(target)
        return sorted(entries)