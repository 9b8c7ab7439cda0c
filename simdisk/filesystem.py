"""Mutating side of a host's simulated filesystem: queuing, syncing and crashing."""

from __future__ import annotations

import dataclasses
import errno
import math
import os
import random
from datetime import timedelta
from pathlib import PurePosixPath
from typing import List, Tuple, Type

from simdisk.records import (
    DEFAULT_DIR_MODE,
    DEFAULT_FILE_MODE,
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
from simdisk.state import FsState, PathArg, _as_path, _parent, _EMPTY

_ZERO = timedelta(0)


def _error(cls: Type[OSError], code: int, path: PurePosixPath) -> OSError:
    return cls(code, os.strerror(code), str(path))


def _not_found(path: PurePosixPath) -> OSError:
    return _error(FileNotFoundError, errno.ENOENT, path)


def _exists(path: PurePosixPath) -> OSError:
    return _error(FileExistsError, errno.EEXIST, path)


def _write_into(data: FileData, offset: int, chunk: bytes, time: timedelta) -> None:
    end = offset + len(chunk)
    if end > len(data.content):
        data.content.extend(bytes(end - len(data.content)))
    data.content[offset:end] = chunk
    data.mtime = time
    data.ctime = time


class Fs(FsState):
    """A host's simulated filesystem with POSIX-style durability.

    New entries and writes are queued as pending operations. `sync_file`
    makes a file's data durable, `sync_dir` makes a directory's entries
    durable, and `discard_pending` models a crash: whatever is still
    pending is lost, and durable data without a durable entry is dropped.
    """

    # -- crash -------------------------------------------------------------

    def discard_pending(self, rng: random.Random) -> None:
        """Lose all pending operations, as on a crash.

        With a block size set, each pending write to a reachable file may
        first be partly applied, a random number of whole blocks from its start.
        """
        if self.block_size is not None:
            self._apply_torn_writes(self.block_size, rng)
        self.pending.clear()
        synced = self.synced_entries
        self.persisted_files = {p: d for p, d in self.persisted_files.items() if p in synced}
        self.persisted_dirs = {p: d for p, d in self.persisted_dirs.items() if p in synced}
        self.persisted_symlinks = {
            p: d for p, d in self.persisted_symlinks.items() if p in synced
        }

    def _apply_torn_writes(self, block_size: int, rng: random.Random) -> None:
        torn: List[Tuple[PurePosixPath, int, bytes, timedelta]] = []
        for op in self.pending:
            if not isinstance(op, Write) or op.path not in self.synced_entries:
                continue
            total_blocks = math.ceil(len(op.data) / block_size)
            if total_blocks == 0:
                continue
            surviving = rng.randint(0, total_blocks)
            if surviving == 0:
                continue
            kept = min(surviving * block_size, len(op.data))
            torn.append((op.path, op.offset, op.data[:kept], op.time))
        for path, offset, chunk, time in torn:
            data = self.persisted_files.get(path)
            if data is not None:
                _write_into(data, offset, chunk, time)

    # -- applying to durable state ----------------------------------------

    def _apply(self, op: PendingOp) -> None:
        match op:
            case CreateFile(path=path, time=time, mode=mode):
                self.persisted_files.setdefault(path, FileData(time, mode))
            case CreateDir(path=path, time=time, mode=mode):
                self.persisted_dirs.setdefault(path, DirData(time, mode))
            case CreateSymlink(path=path, target=target, time=time):
                self.persisted_symlinks.setdefault(path, SymlinkData(target, time))
            case CreateHardLink(path=path, target=target, time=time):
                original = self.persisted_files.get(target)
                if original is not None:
                    new_nlink = original.nlink + 1
                    link = dataclasses.replace(original, nlink=new_nlink)
                    original.nlink = new_nlink
                    original.ctime = time
                    self.persisted_files[path] = link
            case Write(path=path, offset=offset, data=data, time=time):
                stored = self.persisted_files.get(path)
                if stored is not None:
                    _write_into(stored, offset, data, time)
            case SetLen(path=path, length=length, time=time):
                stored = self.persisted_files.get(path)
                if stored is not None:
                    if length < len(stored.content):
                        del stored.content[length:]
                    else:
                        stored.content.extend(bytes(length - len(stored.content)))
                    stored.mtime = time
                    stored.ctime = time
            case SetPermissions(path=path, mode=mode, time=time):
                entry = self.persisted_files.get(path) or self.persisted_dirs.get(path)
                if entry is not None:
                    entry.mode = mode
                    entry.ctime = time
            case Rename(source=source, target=target):
                for table in (self.persisted_files, self.persisted_dirs, self.persisted_symlinks):
                    if source in table:
                        table[target] = table.pop(source)
                        break
            case RemoveFile(path=path):
                self.persisted_files.pop(path, None)
                self.persisted_symlinks.pop(path, None)
            case RemoveDir(path=path):
                self.persisted_dirs.pop(path, None)

    # -- directories -------------------------------------------------------

    def mkdir(self, path: PathArg, time: timedelta, mode: int = DEFAULT_DIR_MODE) -> None:
        """Queue creation of a directory whose parent exists."""
        path = _as_path(path)
        parent = _parent(path)
        if parent is not None and parent != _EMPTY and not self.dir_exists(parent):
            raise _not_found(path)
        if self.dir_exists(path) or self.file_exists(path) or self.symlink_exists(path):
            raise _exists(path)
        self.pending.append(CreateDir(path, time, mode))

    def rmdir(self, path: PathArg) -> None:
        """Queue removal of an empty directory."""
        path = _as_path(path)
        if not self.dir_exists(path):
            raise _not_found(path)
        if self._dir_has_children(path):
            raise _error(OSError, errno.ENOTEMPTY, path)
        self.pending.append(RemoveDir(path))

    # -- entries -----------------------------------------------------------

    def unlink(self, path: PathArg) -> None:
        """Queue removal of a file or symbolic link."""
        path = _as_path(path)
        if not self.file_exists(path) and not self.symlink_exists(path):
            raise _not_found(path)
        if self.page_cache is not None:
            self.page_cache.invalidate_file(path)
        self.pending.append(RemoveFile(path))

    def rename(self, source: PathArg, target: PathArg) -> None:
        """Queue a move of a file, directory or symbolic link."""
        source = _as_path(source)
        target = _as_path(target)
        if not self.parent_exists(target):
            raise _not_found(target)
        if self.file_exists(source) or (
            not self.dir_exists(source) and self.symlink_exists(source)
        ):
            if self.dir_exists(target):
                raise _error(IsADirectoryError, errno.EISDIR, target)
        elif self.dir_exists(source):
            if self.file_exists(target) or self.symlink_exists(target):
                raise _error(NotADirectoryError, errno.ENOTDIR, target)
            if self.dir_exists(target) and self._dir_has_children(target):
                raise _error(OSError, errno.ENOTEMPTY, target)
        else:
            raise _not_found(source)
        self.pending.append(Rename(source, target))

    def create_file(self, path: PathArg, time: timedelta, mode: int = DEFAULT_FILE_MODE) -> None:
        """Queue creation of a file; callers check that it may be created."""
        self.pending.append(CreateFile(_as_path(path), time, mode))

    def create_symlink(self, path: PathArg, target: PathArg, time: timedelta) -> None:
        """Queue creation of a symbolic link at an unused path."""
        path = _as_path(path)
        if not self.parent_exists(path):
            raise _not_found(path)
        if self.file_exists(path) or self.dir_exists(path) or self.symlink_exists(path):
            raise _exists(path)
        self.pending.append(CreateSymlink(path, _as_path(target), time))

    def create_hard_link(self, path: PathArg, target: PathArg, time: timedelta) -> None:
        """Queue creation of a hard link at `path` to the file `target`."""
        path = _as_path(path)
        target = _as_path(target)
        if not self.parent_exists(path):
            raise _not_found(path)
        if not self.file_exists(target):
            raise _not_found(target)
        if self.file_exists(path) or self.dir_exists(path) or self.symlink_exists(path):
            raise _exists(path)
        self.pending.append(CreateHardLink(path, target, time))

    def set_permissions(self, path: PathArg, mode: int, time: timedelta) -> None:
        """Queue a change of permission bits on a file or directory."""
        path = _as_path(path)
        if not self.file_exists(path) and not self.dir_exists(path):
            raise _not_found(path)
        self.pending.append(SetPermissions(path, mode, time))

    # -- data --------------------------------------------------------------

    def write_file(self, path: PathArg, offset: int, data: bytes, time: timedelta) -> None:
        """Queue a write; empty writes are ignored."""
        if data:
            self.pending.append(Write(_as_path(path), offset, bytes(data), time))

    def set_file_len(self, path: PathArg, length: int, time: timedelta) -> None:
        """Queue a truncation or extension, dropping the file's cached pages."""
        path = _as_path(path)
        if self.page_cache is not None:
            self.page_cache.invalidate_file(path)
        self.pending.append(SetLen(path, length, time))

    # -- syncing -----------------------------------------------------------

    def sync_file(self, path: PathArg) -> None:
        """Make a file's data and size durable (its entry needs `sync_dir`)."""
        self._flush_file_data(_as_path(path))

    def sync_file_data(self, path: PathArg) -> None:
        """Make a file's data and size durable, leaving its creation pending."""
        self._flush_file_data(_as_path(path))

    def _flush_file_data(self, path: PurePosixPath) -> None:
        if not self.file_exists(path):
            raise _not_found(path)
        to_flush: List[PendingOp] = []
        to_keep: List[PendingOp] = []
        for op in self.pending:
            if isinstance(op, (Write, SetLen)) and op.path == path:
                to_flush.append(op)
            else:
                to_keep.append(op)
        if path not in self.persisted_files:
            created = next(
                (op for op in to_keep if isinstance(op, CreateFile) and op.path == path),
                None,
            )
            if created is not None:
                self.persisted_files[path] = FileData(created.time, created.mode)
            else:
                self.persisted_files[path] = FileData(_ZERO, DEFAULT_FILE_MODE)
        self.pending = to_keep
        for op in to_flush:
            self._apply(op)

    @staticmethod
    def _touches_dir(op: PendingOp, path: PurePosixPath) -> bool:
        if isinstance(op, CreateDir) and op.path == path:
            return True
        if isinstance(
            op, (CreateFile, CreateDir, CreateSymlink, CreateHardLink, RemoveFile, RemoveDir)
        ):
            return _parent(op.path) == path
        if isinstance(op, Rename):
            return _parent(op.source) == path or _parent(op.target) == path
        return False

    def sync_dir(self, path: PathArg, time: timedelta) -> None:
        """Make the entries of a directory, and its own creation, durable."""
        path = _as_path(path)
        if not self.dir_exists(path):
            raise _not_found(path)
        to_flush = [op for op in self.pending if self._touches_dir(op, path)]
        self.pending = [op for op in self.pending if not self._touches_dir(op, path)]

        modified = False
        for op in to_flush:
            if isinstance(op, CreateDir) and op.path == path:
                self.synced_entries[op.path] = None
            elif isinstance(op, (CreateFile, CreateDir, CreateSymlink, CreateHardLink)):
                modified = True
                self.synced_entries[op.path] = None
            elif isinstance(op, (RemoveFile, RemoveDir)):
                modified = True
                self.synced_entries.pop(op.path, None)
            elif isinstance(op, Rename):
                if _parent(op.source) == path:
                    modified = True
                    self.synced_entries.pop(op.source, None)
                if _parent(op.target) == path:
                    modified = True
                    self.synced_entries[op.target] = None
            self._apply(op)

        if modified:
            stored = self.persisted_dirs.get(path)
            if stored is not None:
                stored.mtime = time
                stored.ctime = time