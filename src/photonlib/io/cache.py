# src/photonlib/io/cache.py
"""
Bounded LRU cache of open photon-library shards.

Joining a visibility map touches thousands of shard files, each many
times and in no particular order. The cache keeps at most `max_size`
files open; on a miss at capacity the least recently used file is closed.
A failed open leaves the cache untouched: nothing is evicted and nothing
is inserted.
"""
from __future__ import annotations
from collections import OrderedDict
from dataclasses import dataclass
import logging
import threading
from typing import Any, Callable, List, Optional, Tuple

import h5py

from photonlib.errors import MissingResourceError
from photonlib.io.records import RECORD_TREE

logger = logging.getLogger(__name__)

DEFAULT_CACHE_SIZE = 100

# opener(path, tree_name) -> (closeable handle, tree); raises MissingResourceError
Opener = Callable[[str, str], Tuple[Any, Any]]


def open_tree(path: str, tree_name: str = RECORD_TREE) -> Tuple[h5py.File, h5py.Group]:
    try:
        f = h5py.File(path, "r")
    except (OSError, FileNotFoundError) as exc:
        raise MissingResourceError(f"Cannot open file: {path} ({exc})", path=path) from exc
    if tree_name not in f:
        f.close()
        raise MissingResourceError(f"Cannot find tree '{tree_name}' in file: {path}", path=path)
    return f, f[tree_name]


@dataclass
class _Entry:
    handle: Any
    tree: Any


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    failed_opens: int = 0


class LRUFileCache:
    """
    get(key) returns the live tree for `key`, opening the file on a miss,
    or None if it cannot be opened. Recency order is kept in an OrderedDict
    (most recent at the end); eviction pops from the front.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_CACHE_SIZE,
        tree_name: str = RECORD_TREE,
        opener: Optional[Opener] = None,
    ) -> None:
        if max_size < 1:
            raise ValueError(f"LRUFileCache max_size must be >= 1, got {max_size}")
        self.max_size = int(max_size)
        self.tree_name = tree_name
        self._opener: Opener = opener or open_tree
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self._lock = threading.RLock()
        self.stats = CacheStats()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self.stats.hits += 1
                self._entries.move_to_end(key)
                return entry.tree

            self.stats.misses += 1
            try:
                handle, tree = self._opener(key, self.tree_name)
            except MissingResourceError as exc:
                self.stats.failed_opens += 1
                logger.warning("[cache] %s", exc)
                return None

            if len(self._entries) >= self.max_size:
                self._evict()
            self._entries[key] = _Entry(handle=handle, tree=tree)
            return tree

    def _evict(self) -> None:
        lru_key, lru = self._entries.popitem(last=False)
        self.stats.evictions += 1
        lru.handle.close()
        logger.debug("[cache] closed %s", lru_key)

    def keys(self) -> List[str]:
        """Cached keys, most recently used first."""
        with self._lock:
            return list(reversed(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def close(self) -> None:
        """Close every open file exactly once and empty the cache."""
        with self._lock:
            while self._entries:
                _, entry = self._entries.popitem(last=False)
                entry.handle.close()

    def __enter__(self) -> "LRUFileCache":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
