import h5py
import pytest

from photonlib.errors import MissingResourceError
from photonlib.io.cache import LRUFileCache, open_tree
from photonlib.io.records import RECORD_TREE
from photonlib.io.vis_store import VisTreeWriter


# --- Helpers -----------------------------------------------------------------

class _Handle:
    def __init__(self, key, log):
        self.key = key
        self.log = log
        self.closed = 0

    def close(self):
        self.closed += 1
        self.log.append(("close", self.key))


def _fake_opener(available, log, handles):
    def opener(path, tree_name):
        if path not in available:
            raise MissingResourceError(f"Cannot open file: {path}", path=path)
        h = _Handle(path, log)
        handles.append(h)
        log.append(("open", path))
        return h, f"tree:{path}"
    return opener


# --- Tests -------------------------------------------------------------------

def test_lru_eviction_order():
    log, handles = [], []
    cache = LRUFileCache(2, opener=_fake_opener({"A", "B", "C"}, log, handles))

    assert cache.get("A") == "tree:A"
    assert cache.get("B") == "tree:B"
    assert cache.get("C") == "tree:C"
    assert "A" not in cache
    assert cache.keys() == ["C", "B"]
    assert ("close", "A") in log

    # touching B makes C the eviction candidate
    assert cache.get("B") == "tree:B"
    assert cache.get("A") == "tree:A"
    assert cache.keys() == ["A", "B"]
    # the new file is opened before the LRU one is closed
    assert log[-2:] == [("open", "A"), ("close", "C")]
    assert cache.stats.hits == 1 and cache.stats.misses == 4 and cache.stats.evictions == 2


def test_hit_does_not_reopen():
    log, handles = [], []
    cache = LRUFileCache(3, opener=_fake_opener({"A"}, log, handles))
    for _ in range(5):
        assert cache.get("A") == "tree:A"
    assert [e for e in log if e[0] == "open"] == [("open", "A")]
    assert cache.stats.hits == 4


def test_failed_open_evicts_nothing():
    log, handles = [], []
    cache = LRUFileCache(2, opener=_fake_opener({"A", "B"}, log, handles))
    cache.get("A")
    cache.get("B")

    assert cache.get("missing") is None
    assert cache.keys() == ["B", "A"]
    assert not any(e[0] == "close" for e in log)
    assert cache.stats.failed_opens == 1 and cache.stats.evictions == 0


def test_close_releases_each_handle_once():
    log, handles = [], []
    with LRUFileCache(2, opener=_fake_opener({"A", "B", "C"}, log, handles)) as cache:
        for k in ("A", "B", "C", "A"):
            cache.get(k)
    assert len(cache) == 0
    assert all(h.closed == 1 for h in handles)
    cache.close()
    assert all(h.closed == 1 for h in handles)


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        LRUFileCache(0)


def test_real_shards(tmp_path):
    good = tmp_path / "good_vtree.h5"
    with VisTreeWriter(good):
        pass
    other = tmp_path / "other.h5"
    with h5py.File(other, "w") as f:
        f.create_group("somethingElse")

    with pytest.raises(MissingResourceError):
        open_tree(str(other), RECORD_TREE)
    with pytest.raises(MissingResourceError):
        open_tree(str(tmp_path / "absent.h5"))

    with LRUFileCache(1) as cache:
        tree = cache.get(str(good))
        assert isinstance(tree, h5py.Group)
        assert cache.get(str(other)) is None
        assert cache.get(str(tmp_path / "absent.h5")) is None
        assert cache.keys() == [str(good)]


def test_reaccess_evicts_least_recent():
    log, handles = [], []
    cache = LRUFileCache(2, opener=_fake_opener({"A", "B", "C"}, log, handles))
    for k in ("A", "B", "C", "A"):
        cache.get(k)

    assert [k for op, k in log if op == "close"] == ["A", "B"]
    assert cache.keys() == ["A", "C"]
    assert "B" not in cache
