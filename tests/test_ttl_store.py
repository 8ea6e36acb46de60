from core.ttl_store import TTLStore


class TestTTLStore:

    def test_get_before_expiry(self, clock):
        store = TTLStore(clock=clock)
        store.set("k", "v", ttl=10)
        clock.advance(9.9)
        assert store.get("k") == "v"
        assert "k" in store

    def test_expired_entry_is_dropped_on_read(self, clock):
        store = TTLStore(clock=clock)
        store.set("k", "v", ttl=10)
        assert len(store) == 1
        clock.advance(10)
        assert store.get("k") is None
        assert "k" not in store
        assert len(store) == 0

    def test_set_refreshes_expiry(self, clock):
        store = TTLStore(clock=clock)
        store.set("k", 1, ttl=5)
        clock.advance(4)
        store.set("k", 2, ttl=5)
        clock.advance(4)
        assert store.get("k") == 2

    def test_missing_key(self, clock):
        assert TTLStore(clock=clock).get("nope") is None
