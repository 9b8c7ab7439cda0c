# simdisk

simdisk is an in-memory model of a POSIX-like filesystem. It is meant for testing how code
copes with crashes: write-ahead logs, database page files, and anything else that depends
on `fsync`.

Every change first goes into a queue of *pending* operations. A change becomes *durable*
only when it is synced:

- `Fs.sync_file` (like `fsync`) and `Fs.sync_file_data` (like `fdatasync`) make a file's
  queued writes and length changes durable. The file's directory entry stays pending.
- `Fs.sync_dir` makes directory entries durable. This covers creations, removals, hard
  links and renames inside the directory, and the directory's own creation. When the
  directory's contents changed, its modification and change times are set to the given
  time.

`Fs.discard_pending(rng)` simulates a crash:

1. If a block size is configured, each pending write to a file whose entry is durable may
   be partly applied first, as a *torn write*. A random number of whole blocks, counted
   from the start of the write, survive.
2. All pending operations are dropped.
3. Files, directories and symlinks whose directory entry was never synced are removed as
   orphans.

## Installation

```
pip install simdisk
```

## Example

```python
import random
from datetime import timedelta

from simdisk.config import FsConfig
from simdisk.filesystem import Fs

fs = Fs(FsConfig())
now = timedelta(seconds=1)

fs.mkdir("/data", now, 0o755)
fs.sync_dir("/", now)

fs.create_file("/data/log", now, 0o644)
fs.write_file("/data/log", 0, b"hello", now)
assert fs.read_file("/data/log", 5, 0) == b"hello"

# Make both the data and the directory entry durable.
fs.sync_file("/data/log")
fs.sync_dir("/data", now)

fs.write_file("/data/log", 5, b" world", now)  # not synced
fs.discard_pending(random.Random(0))            # crash

assert fs.read_file("/data/log", 64, 0) == b"hello"
```

Paths may be given as `str` or `pathlib.PurePosixPath`. Times are `datetime.timedelta`
values measured from an epoch that the caller chooses. Randomness always comes from a
`random.Random` that you pass in, so runs with the same seed give the same results.

## Modules

- `simdisk.config`: `FsConfig`, `IoLatency`, `PageCacheConfig` and `FsCorruption`.
- `simdisk.records`: the pending operations (`CreateFile`, `CreateDir`,
  `CreateSymlink`, `CreateHardLink`, `Write`, `SetLen`, `SetPermissions`, `Rename`,
  `RemoveFile`, `RemoveDir`) and the stored records (`FileData`, `DirData`,
  `SymlinkData`).
- `simdisk.cache`: `PageCache`, an ordered cache of (path, page index) pairs.
- `simdisk.state`: `FsState`, which holds the stored state and answers queries, and the
  `Timestamps` named tuple.
- `simdisk.filesystem`: `Fs`, which extends `FsState` with the operations that change
  state.

## Configuration

`FsConfig` fields are checked every time they are assigned. A bad value raises
`ValueError` or `TypeError`.

| Field | Default | Accepted values |
| --- | --- | --- |
| `sync_probability` | `0.0` | 0.0 to 1.0 |
| `capacity` | `None` (unlimited) | non-negative int |
| `io_error_probability` | `0.0` | 0.0 to 1.0 |
| `corruption_probability` | `0.0` | 0.0 to 1.0 |
| `noatime` | `True` | only `True`; `False` raises `NotImplementedError` |
| `block_size` | `None` (atomic writes) | positive int; turns on torn writes at a crash |
| `io_latency` | `None` | `IoLatency` |
| `page_cache` | `None` | `PageCacheConfig` |

`FsConfig.enable_io_latency()` creates an `IoLatency` if none is set and returns it. Its
defaults are:

- `min_latency`: 50 µs
- `max_latency`: 5 ms
- `distribution`: exponential with rate 5.0

`IoLatency.sample(rng)` returns the minimum plus the range multiplied by an exponential
draw, with the draw capped at 1.

`FsConfig.enable_page_cache()` creates a `PageCacheConfig` if none is set and returns it.
Its defaults are:

- `page_size`: 4096
- `max_pages`: 256
- `random_eviction_probability`: 0.0

`Fs.calculate_latency(rng, cache_hit)` works as follows:

- With a page cache configured and `cache_hit` true, it returns one microsecond.
- Otherwise it returns a sample from the configured `IoLatency`.
- With no `IoLatency` configured, it returns zero.

`Fs.check_space(n)` raises `OSError` (ENOSPC, "No space left on device") when
`used_bytes() + n` would exceed `capacity`. The write methods do not call it; calling it
is up to you.

`FsCorruption` is a frozen record of a corruption event, holding `path`, `offset` and
`length`.

## Inspecting state

`Fs` (through `FsState`) shows the merged view of durable and pending state through these
queries:

- existence: `file_exists`, `dir_exists`, `symlink_exists`, `parent_exists`
- contents and size: `file_len`, `read_file(path, size, offset)` (returns `bytes`),
  `read_link`, `dir_entries` (returns a sorted list)
- metadata: `file_mode`, `dir_mode`, `file_nlink`
- timestamps: `file_timestamps`, `dir_timestamps`, `symlink_timestamps`. Each returns
  `Timestamps(crtime, mtime, ctime)` or `None`.
- resources: `used_bytes`, `check_space`, `alloc_fd`, `calculate_latency`

## Errors

Operations raise exceptions that carry an errno and the matching POSIX message:

- `FileNotFoundError`: "No such file or directory"
- `FileExistsError`: "File exists"
- `OSError` with ENOTEMPTY: "Directory not empty"
- `IsADirectoryError`: "Is a directory"
- `NotADirectoryError`: "Not a directory"

`Fs.create_file` does not check anything. The caller decides whether the file may be
created.

## What it does not do

simdisk models filesystem state only. It does not provide:

- a file or handle API in the style of `open()`
- asynchronous operations or sleeping for the computed latency
- a simulation loop or clock

`sync_probability`, `io_error_probability` and `corruption_probability` are stored on the
`Fs`, but no operation acts on them. Random syncing, injected I/O errors and read
corruption are left to the code that drives the filesystem. The page cache is updated only
where `Fs.unlink` and `Fs.set_file_len` invalidate a file's pages. Filling and consulting
the cache with `PageCache.insert` and `PageCache.access` is up to the caller.