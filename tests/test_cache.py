import json

from migrator.utils.cache import CACHE_FORMAT_VERSION, CacheStore


class FakeClock:
    def __init__(self, now=1_700_000_000_000):
        self.now = now

    def __call__(self):
        return self.now


def test_creates_missing_directory(tmp_path):
    path = tmp_path / "nested" / "cache"
    CacheStore(path)
    assert path.is_dir()


def test_round_trip(tmp_path):
    cache = CacheStore(tmp_path)
    payload = [{"id": 1, "email": "a@example.com", "metafields": [], "tags": None, "score": 1.5}]
    cache.save("customers", payload)
    assert cache.load("customers") == payload


def test_entry_format(tmp_path):
    clock = FakeClock()
    cache = CacheStore(tmp_path, clock=clock)
    cache.save("customers", {"a": 1})
    entry = json.loads((tmp_path / "customers.json").read_text())
    assert entry == {"data": {"a": 1}, "timestamp": clock.now, "version": CACHE_FORMAT_VERSION}


def test_save_overwrites(tmp_path):
    cache = CacheStore(tmp_path)
    cache.save("k", [1])
    cache.save("k", [2])
    assert cache.load("k") == [2]


def test_missing_entry_is_none(tmp_path):
    assert CacheStore(tmp_path).load("nope") is None


def test_expired_entry_is_none(tmp_path):
    clock = FakeClock()
    cache = CacheStore(tmp_path, clock=clock)
    cache.save("k", {"stale": True})
    clock.now += 61_000
    assert cache.load("k", max_age=60) is None
    assert cache.load("k", max_age=120) == {"stale": True}
    assert cache.load("k") == {"stale": True}


def test_zero_max_age_expires_anything_older(tmp_path):
    clock = FakeClock()
    cache = CacheStore(tmp_path, clock=clock)
    cache.save("k", 1)
    clock.now += 1
    assert cache.load("k", max_age=0) is None


def test_corrupt_entry_is_none(tmp_path):
    cache = CacheStore(tmp_path)
    (tmp_path / "bad.json").write_text("{not json")
    (tmp_path / "partial.json").write_text(json.dumps({"data": [1]}))
    assert cache.load("bad") is None
    assert cache.load("partial") is None


def test_unserializable_save_is_swallowed(tmp_path):
    cache = CacheStore(tmp_path)
    cache.save("k", {"obj": object()})
    assert not (tmp_path / "k.json").exists()
    assert list(tmp_path.iterdir()) == []


def test_delete_is_idempotent(tmp_path):
    cache = CacheStore(tmp_path)
    cache.save("k", 1)
    cache.delete("k")
    cache.delete("k")
    assert cache.load("k") is None


def test_clear_removes_all_entries(tmp_path):
    cache = CacheStore(tmp_path)
    cache.save("a", 1)
    cache.save("b", 2)
    assert cache.clear() == 2
    assert cache.clear() == 0
    assert list(tmp_path.glob("*.json")) == []


def test_get_info(tmp_path):
    clock = FakeClock()
    cache = CacheStore(tmp_path, clock=clock)
    assert not cache.get_info("k").exists

    cache.save("k", {"customers": list(range(10))})
    clock.now += 5_000
    info = cache.get_info("k")
    assert info.exists
    assert info.age_ms == 5_000
    assert info.size_bytes == (tmp_path / "k.json").stat().st_size


def test_get_info_on_corrupt_entry(tmp_path):
    cache = CacheStore(tmp_path)
    (tmp_path / "bad.json").write_text("garbage")
    info = cache.get_info("bad")
    assert info.exists
    assert info.age_ms is None
    assert info.size_bytes == 7
