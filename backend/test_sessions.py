import pytest

from sessions import MemorySessionStore, SessionStore


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_set_get_delete():
    store = MemorySessionStore()
    sid = store.new_sid()
    store.set(sid, {"account_id": "abc"}, ttl=60)
    assert store.get(sid) == {"account_id": "abc"}
    store.delete(sid)
    assert store.get(sid) is None
    store.delete(sid)


def test_entries_expire():
    clock = FakeClock()
    store = MemorySessionStore(clock=clock)
    store.set("a", {"account_id": "1"}, ttl=10)
    store.set("b", {"account_id": "2"}, ttl=100)

    clock.now += 10
    assert store.get("a") is None
    assert store.get("b") == {"account_id": "2"}
    assert len(store) == 1


def test_returned_data_is_a_copy():
    store = MemorySessionStore()
    store.set("a", {"account_id": "1"}, ttl=10)
    store.get("a")["account_id"] = "tampered"
    assert store.get("a") == {"account_id": "1"}


def test_session_ids_are_unique():
    assert len({MemorySessionStore.new_sid() for _ in range(100)}) == 100


def test_incomplete_store_cannot_be_instantiated():
    class GetOnly(SessionStore):
        def get(self, sid):
            return None

    with pytest.raises(TypeError):
        SessionStore()
    with pytest.raises(TypeError):
        GetOnly()
