"""Configuration objects for the simulated filesystem."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import PurePosixPath
from typing import Any, Optional, Union

_ZERO = timedelta(0)


def _check_probability(name: str, value: float) -> float:
    value = float(value)
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be between 0.0 and 1.0")
    return value


def _check_duration(name: str, value: timedelta) -> timedelta:
    if not isinstance(value, timedelta):
        raise TypeError(f"{name} must be a timedelta")
    if value < _ZERO:
        raise ValueError(f"{name} must not be negative")
    return value


def _check_non_negative_int(name: str, value: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an integer")
    if value < 0:
        raise ValueError(f"{name} must not be negative")
    return value


def _check_positive_int(name: str, value: int) -> int:
    value = _check_non_negative_int(name, value)
    if value == 0:
        raise ValueError(f"{name} must be positive")
    return value


@dataclass(frozen=True)
class FsCorruption:
    """Describes a silent data corruption event on a read."""

    path: PurePosixPath
    offset: int
    length: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", PurePosixPath(self.path))
        _check_non_negative_int("offset", self.offset)
        _check_non_negative_int("length", self.length)


class _Validated:
    """Mixin that validates every attribute assignment through `_validate`."""

    def _validate(self, name: str, value: Any) -> Any:
        return value

    def __setattr__(self, name: str, value: Any) -> None:
        super().__setattr__(name, self._validate(name, value))


@dataclass
class IoLatency(_Validated):
    """I/O latency range and the exponential curve used to pick within it.

    `distribution` is the rate (lambda) of the exponential distribution;
    higher values produce more latencies near the minimum.
    """

    min_latency: timedelta = field(default_factory=lambda: timedelta(microseconds=50))
    max_latency: timedelta = field(default_factory=lambda: timedelta(milliseconds=5))
    distribution: float = 5.0

    def _validate(self, name: str, value: Any) -> Any:
        if name in ("min_latency", "max_latency"):
            return _check_duration(name, value)
        if name == "distribution":
            value = float(value)
            if math.isnan(value) or value <= 0.0:
                raise ValueError("lambda must be positive")
            return value
        return value

    def sample(self, rng: random.Random) -> timedelta:
        """Draw a latency between the minimum and maximum."""
        span = max(self.max_latency - self.min_latency, _ZERO)
        draw = rng.expovariate(self.distribution)
        return self.min_latency + span * min(draw, 1.0)


@dataclass
class PageCacheConfig(_Validated):
    """Settings for the simulated page cache."""

    page_size: int = 4096
    max_pages: int = 256
    random_eviction_probability: float = 0.0

    def _validate(self, name: str, value: Any) -> Any:
        if name == "page_size":
            return _check_positive_int("page_size", value)
        if name == "max_pages":
            return _check_non_negative_int("max_pages", value)
        if name == "random_eviction_probability":
            return _check_probability(name, value)
        return value


@dataclass
class FsConfig(_Validated):
    """Behaviour of a host's simulated filesystem.

    By default writes become durable only on explicit sync, capacity is
    unlimited, no faults are injected, writes are atomic and operations
    take no time.
    """

    sync_probability: float = 0.0
    capacity: Optional[int] = None
    io_error_probability: float = 0.0
    corruption_probability: float = 0.0
    noatime: bool = True
    block_size: Optional[int] = None
    io_latency: Optional[IoLatency] = None
    page_cache: Optional[PageCacheConfig] = None

    def _validate(self, name: str, value: Any) -> Any:
        if name in ("sync_probability", "io_error_probability", "corruption_probability"):
            return _check_probability(name, value)
        if name == "capacity":
            return None if value is None else _check_non_negative_int(name, value)
        if name == "block_size":
            return None if value is None else _check_positive_int(name, value)
        if name == "noatime":
            if not value:
                raise NotImplementedError(
                    "atime tracking is not implemented; noatime must be true"
                )
            return True
        if name == "io_latency":
            if value is not None and not isinstance(value, IoLatency):
                raise TypeError("io_latency must be an IoLatency")
            return value
        if name == "page_cache":
            if value is not None and not isinstance(value, PageCacheConfig):
                raise TypeError("page_cache must be a PageCacheConfig")
            return value
        return value

    def enable_io_latency(self) -> IoLatency:
        """Turn on latency simulation and return its settings."""
        if self.io_latency is None:
            self.io_latency = IoLatency()
        return self.io_latency

    def enable_page_cache(self) -> PageCacheConfig:
        """Turn on page cache simulation and return its settings."""
        if self.page_cache is None:
            self.page_cache = PageCacheConfig()
        return self.page_cache


PathLike = Union[str, PurePosixPath]