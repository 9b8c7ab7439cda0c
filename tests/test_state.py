import errno
import random
from datetime import timedelta
from pathlib import PurePosixPath

import pytest

from simdisk.config import FsConfig
from simdisk.records import (
    CreateDir,
    CreateFile,
    CreateHardLink,
    CreateSymlink,
    DirData,
    FileData,
    RemoveFile,
    Rename,
    SetLen,
    SetPermissions,
    SymlinkData,
    Write,
)
from simdisk.state import FsState, Timestamps

T1 = timedelta(seconds=1)
T2 = timedelta(seconds=2)
T3 = timedelta(seconds=3)
P = PurePosixPath


@pytest.fixture
def state():
    return FsState(FsConfig())


def test_root_directory_exists_from_start(state):
    assert state.dir_exists("/")
    assert not state.file_exists("/")
    assert state.dir_timestamps("/") == Timestamps(timedelta(0), timedelta(0), timedelta(0))
    assert state.dir_mode("/") == 0o755


def test_alloc_fd_counts_up(state):
    assert [state.alloc_fd() for _ in range(3)] == [0, 1, 2]


def test_pending_create_and_remove(state):
    state.pending.append(CreateFile("/a", T1))
    assert state.file_exists("/a")
    state.pending.append(RemoveFile("/a"))
    assert not state.file_exists("/a")


def test_rename_moves_file(state):
    state.pending.append(CreateFile("/a", T1))
    state.pending.append(Write("/a", 0, b"abc", T1))
    state.pending.append(Rename("/a", "/b"))
    assert not state.file_exists("/a")
    assert state.file_exists("/b")


def test_dir_rename_needs_persisted_source(state):
    state.persisted_dirs[P("/d")] = DirData(T1)
    state.pending.append(Rename("/d", "/e"))
    assert not state.dir_exists("/d")
    assert state.dir_exists("/e")


def test_read_merges_persisted_and_pending(state):
    state.persisted_files[P("/f")] = FileData(T1, content=b"hello")
    state.pending.append(Write("/f", 3, b"XYZ", T2))
    assert state.file_len("/f") == 6
    assert state.read_file("/f", 100, 0) == b"helXYZ"
    assert state.read_file("/f", 2, 4) == b"YZ"


def test_read_gap_is_zero_filled(state):
    state.pending.append(CreateFile("/f", T1))
    state.pending.append(Write("/f", 4, b"ab", T1))
    assert state.read_file("/f", 10, 0) == b"\x00\x00\x00\x00ab"


def test_read_past_end_and_empty_size(state):
    state.persisted_files[P("/f")] = FileData(T1, content=b"abc")
    assert state.read_file("/f", 5, 3) == b""
    assert state.read_file("/f", 0, 0) == b""


def test_set_len_truncates(state):
    state.persisted_files[P("/f")] = FileData(T1, content=b"abcdef")
    state.pending.append(SetLen("/f", 2, T2))
    assert state.file_len("/f") == 2
    assert state.read_file("/f", 10, 0) == b"ab"


def test_renamed_file_reads_pending_writes(state):
    state.persisted_files[P("/a")] = FileData(T1, content=b"old")
    state.pending.append(Write("/a", 0, b"new", T2))
    state.pending.append(Rename("/a", "/b"))
    assert state.read_file("/b", 3, 0) == b"new"


def test_hard_link_shares_content_and_nlink(state):
    state.persisted_files[P("/t")] = FileData(T1, content=b"data")
    state.pending.append(CreateHardLink("/l", "/t", T2))
    assert state.file_exists("/l")
    assert state.read_file("/l", 4, 0) == b"data"
    assert state.file_nlink("/t") == 2
    assert state.file_nlink("/l") == state.file_nlink("/t")


def test_used_bytes_and_capacity():
    config = FsConfig(capacity=10)
    state = FsState(config)
    state.persisted_files[P("/f")] = FileData(T1, content=b"12345")
    state.pending.append(Write("/f", 3, b"abcd", T2))
    assert state.used_bytes() == 7
    state.check_space(3)
    with pytest.raises(OSError) as info:
        state.check_space(4)
    assert info.value.errno == errno.ENOSPC


def test_unlimited_capacity_accepts_any_size(state):
    assert state.check_space(10**15) is None


def test_read_link(state):
    state.persisted_symlinks[P("/s")] = SymlinkData("/target", T1)
    assert state.read_link("/s") == P("/target")
    state.pending.append(CreateSymlink("/p", "/other", T2))
    assert state.read_link("/p") == P("/other")
    state.pending.append(Rename("/p", "/q"))
    assert state.read_link("/q") == P("/other")
    assert state.symlink_exists("/q")
    assert not state.symlink_exists("/p")


def test_read_link_missing_or_removed(state):
    state.persisted_symlinks[P("/s")] = SymlinkData("/target", T1)
    state.pending.append(RemoveFile("/s"))
    with pytest.raises(FileNotFoundError):
        state.read_link("/s")
    with pytest.raises(FileNotFoundError):
        state.read_link("/nope")


def test_modes(state):
    state.pending.append(CreateFile("/f", T1, 0o600))
    assert state.file_mode("/f") == 0o600
    state.pending.append(SetPermissions("/f", 0o400, T2))
    assert state.file_mode("/f") == 0o400
    assert state.file_mode("/missing") is None
    state.pending.append(CreateDir("/d", T1, 0o700))
    assert state.dir_mode("/d") == 0o700


def test_parent_exists(state):
    assert state.parent_exists("/a")
    assert not state.parent_exists("/a/b")
    assert state.parent_exists("relative")
    state.pending.append(CreateDir("/a", T1))
    assert state.parent_exists("/a/b")


def test_file_timestamps(state):
    state.pending.append(CreateFile("/f", T1))
    state.pending.append(Write("/f", 0, b"x", T2))
    assert state.file_timestamps("/f") == Timestamps(T1, T2, T2)
    assert state.file_timestamps("/none") is None


def test_dir_timestamps_follow_children(state):
    state.pending.append(CreateFile("/f", T3))
    assert state.dir_timestamps("/") == Timestamps(timedelta(0), T3, T3)


def test_symlink_timestamps(state):
    state.pending.append(CreateSymlink("/s", "/t", T2))
    assert state.symlink_timestamps("/s") == Timestamps(T2, T2, T2)
    assert state.symlink_timestamps("/x") is None


def test_dir_entries(state):
    state.persisted_files[P("/a")] = FileData(T1)
    state.pending.append(CreateDir("/d", T1))
    state.pending.append(CreateFile("/d/inner", T1))
    state.pending.append(CreateSymlink("/s", "/a", T1))
    state.pending.append(CreateFile("/gone", T1))
    state.pending.append(Rename("/gone", "/moved"))
    assert state.dir_entries("/") == [P("/a"), P("/d"), P("/moved"), P("/s")]
    assert state.dir_entries("/d") == [P("/d/inner")]


def test_latency_disabled_is_zero(state):
    assert state.calculate_latency(random.Random(1), False) == timedelta(0)
    assert state.calculate_latency(random.Random(1), True) == timedelta(0)


def test_latency_fixed_range():
    config = FsConfig()
    latency = config.enable_io_latency()
    latency.min_latency = timedelta(milliseconds=1)
    latency.max_latency = timedelta(milliseconds=1)
    state = FsState(config)
    assert state.calculate_latency(random.Random(7), False) == timedelta(milliseconds=1)


def test_latency_within_bounds_and_cache_hit_faster():
    config = FsConfig()
    latency = config.enable_io_latency()
    config.enable_page_cache()
    state = FsState(config)
    rng = random.Random(3)
    for _ in range(50):
        value = state.calculate_latency(rng, False)
        assert latency.min_latency <= value <= latency.max_latency
    assert state.calculate_latency(rng, True) < latency.min_latency


def test_page_cache_built_from_config():
    config = FsConfig()
    config.enable_page_cache().max_pages = 2
    state = FsState(config)
    state.page_cache.insert("/f", 0)
    assert state.page_cache.access("/f", 0, random.Random(0))
    assert FsState(FsConfig()).page_cache is None