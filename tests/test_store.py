from sharedcache.data.store import CacheStore
from sharedcache.models import Entry, Status


def test_set_and_get():
    store = CacheStore("test")
    entry = Entry(value={"foo": "bar"}, status=Status.SYNC, writer_id="w1")
    store.set("x", entry)
    assert store.has("x")
    fetched = store.get("x")
    assert fetched is entry
    assert fetched.status == Status.SYNC
    assert fetched.value == {"foo": "bar"}


def test_get_missing_returns_none():
    store = CacheStore("test")
    assert store.get("missing") is None
    assert not store.has("missing")


def test_set_overwrites_unconditionally():
    store = CacheStore("test")
    store.set("x", Entry(status=Status.PENDING, writer_id="w1"))
    store.set("x", Entry(value=1, status=Status.FULFILLED, writer_id="w2"))
    assert store.get("x") == Entry(1, Status.FULFILLED, "w2")


def test_delete_and_clear():
    store = CacheStore("test")
    store.set("a", Entry(1))
    store.set("b", Entry(2))
    store.delete("a")
    store.delete("never-set")
    assert not store.has("a")
    assert len(store) == 1
    store.clear()
    assert len(store) == 0
    assert list(store.keys()) == []


def test_status_settlement_flag():
    assert Status.FULFILLED.is_settlement
    assert Status.REJECTED.is_settlement
    assert not Status.PENDING.is_settlement
    assert not Status.SYNC.is_settlement
