"""Simulated operating-system page cache."""

from __future__ import annotations

import random
from pathlib import PurePosixPath
from typing import Dict, Iterator, List, Tuple, Union

from simdisk.config import PageCacheConfig

PageKey = Tuple[PurePosixPath, int]


def _as_path(value: Union[str, PurePosixPath]) -> PurePosixPath:
    return value if isinstance(value, PurePosixPath) else PurePosixPath(value)


class PageCache:
    """Recency-ordered cache of (file, page) pairs with optional random eviction.

    Hits stand for memory-speed I/O and misses for a trip to the disk.
    Removing a page moves the last page into its slot, and the page in the
    first slot is the one evicted when the cache is full.
    """

    def __init__(self, config: PageCacheConfig) -> None:
        self.config = config
        self._order: List[PageKey] = []
        self._slots: Dict[PageKey, int] = {}

    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[PageKey]:
        return iter(list(self._order))

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        path, page = key
        return (_as_path(path), page) in self._slots

    def _key(self, path: Union[str, PurePosixPath], offset: int) -> PageKey:
        return (_as_path(path), offset // self.config.page_size)

    def _swap_remove(self, key: PageKey) -> bool:
        slot = self._slots.pop(key, None)
        if slot is None:
            return False
        last = self._order.pop()
        if slot < len(self._order):
            self._order[slot] = last
            self._slots[last] = slot
        return True

    def _push(self, key: PageKey) -> None:
        self._slots[key] = len(self._order)
        self._order.append(key)

    def _reindex(self) -> None:
        self._slots = {key: slot for slot, key in enumerate(self._order)}

    def access(
        self, path: Union[str, PurePosixPath], offset: int, rng: random.Random
    ) -> bool:
        """Report whether the page holding `offset` is cached, promoting it on a hit."""
        key = self._key(path, offset)
        chance = self.config.random_eviction_probability
        if chance > 0.0 and rng.random() < chance:
            self._swap_remove(key)
            return False
        if self._swap_remove(key):
            self._push(key)
            return True
        return False

    def insert(self, path: Union[str, PurePosixPath], offset: int) -> None:
        """Cache the page holding `offset`, evicting the oldest pages when full."""
        if self.config.max_pages == 0:
            return
        key = self._key(path, offset)
        if len(self._order) >= self.config.max_pages:
            excess = len(self._order) - self.config.max_pages + 1
            del self._order[:excess]
            self._reindex()
        self._swap_remove(key)
        self._push(key)

    def invalidate_file(self, path: Union[str, PurePosixPath]) -> None:
        """Drop every cached page of a file."""
        target = _as_path(path)
        self._order = [key for key in self._order if key[0] != target]
        self._reindex()