from types import SimpleNamespace

from app.doctrack.errors import StoreError
from app.doctrack.realtime import SESSION_TOPIC, ChangeFeed, DataCache


class FakeStore:
    """Returns a fixed list per query; counts how often it is asked."""

    def __init__(self):
        self.calls = 0
        self.fail = False
        self.rows = [SimpleNamespace(id=1)]

    def all(self, stmt):
        self.calls += 1
        if self.fail:
            raise StoreError("select", "offline")
        return list(self.rows)

    def get(self, model, row_id):
        return SimpleNamespace(id=row_id, logo_url="/assets/logos/lgu_logo_1")

    def detach(self, rows):
        pass


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_feed_delivers_to_topic_subscribers_only():
    feed = ChangeFeed()
    seen = []
    unsubscribe = feed.subscribe("documents", lambda topic, payload: seen.append((topic, payload)))
    feed.subscribe("statuses", lambda topic, payload: seen.append(("other", payload)))

    feed.publish("documents")
    feed.publish(SESSION_TOPIC, "admin@example.com")
    unsubscribe()
    feed.publish("documents")

    assert seen == [("documents", None)]


def test_feed_isolates_failing_subscriber():
    feed = ChangeFeed()
    seen = []

    def boom(topic, payload):
        raise RuntimeError("subscriber bug")

    feed.subscribe("documents", boom)
    feed.subscribe("documents", lambda topic, payload: seen.append(topic))
    feed.publish("documents")
    assert seen == ["documents"]


def test_cache_refetches_only_after_change():
    feed = ChangeFeed()
    cache = DataCache(feed)
    store = FakeStore()

    snap = cache.snapshot(store)
    cache.snapshot(store)
    assert cache.refetch_count == 1
    assert snap.documents_count == 1

    for topic in ("documents", "departments", "statuses", SESSION_TOPIC):
        feed.publish(topic)
        cache.snapshot(store)
    assert cache.refetch_count == 5

    # unrelated tables leave the snapshot alone
    feed.publish("users")
    feed.publish("site_configs")
    cache.snapshot(store)
    assert cache.refetch_count == 5


def test_cache_expires_on_age():
    clock = FakeClock()
    cache = DataCache(ChangeFeed(), max_age=5.0, clock=clock)
    store = FakeStore()

    cache.snapshot(store)
    clock.now += 4.0
    cache.snapshot(store)
    assert cache.refetch_count == 1
    clock.now += 2.0
    cache.snapshot(store)
    assert cache.refetch_count == 2


def test_cache_keeps_previous_lists_when_fetch_fails():
    feed = ChangeFeed()
    cache = DataCache(feed)
    store = FakeStore()
    cache.snapshot(store)

    store.fail = True
    feed.publish("documents")
    snap = cache.snapshot(store)

    assert snap.documents_count == 1
    assert [d.id for d in snap.departments] == [1]


def test_site_config_refetched_on_its_own_topic():
    feed = ChangeFeed()
    cache = DataCache(feed)
    store = FakeStore()
    gets = []
    original = store.get
    store.get = lambda model, row_id: gets.append(row_id) or original(model, row_id)

    assert cache.site_config(store).logo_url == "/assets/logos/lgu_logo_1"
    cache.site_config(store)
    assert gets == [1]

    feed.publish("site_configs")
    cache.site_config(store)
    assert gets == [1, 1]


def test_site_config_expires_on_age():
    clock = FakeClock()
    cache = DataCache(ChangeFeed(), max_age=5.0, clock=clock)
    store = FakeStore()
    gets = []
    original = store.get
    store.get = lambda model, row_id: gets.append(row_id) or original(model, row_id)

    cache.site_config(store)
    clock.now += 4.0
    cache.site_config(store)
    assert gets == [1]

    # another worker may have uploaded a new logo
    clock.now += 2.0
    cache.site_config(store)
    assert gets == [1, 1]
