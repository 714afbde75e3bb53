import pytest


def make_city_line(gid, name, country="MX", population="20000", lat="19.42847",
                   lon="-99.12766", tz="America/Mexico_City", aliases=""):
    cols = [
        gid, name, name, aliases, lat, lon, "P", "PPLA", country, "", "09", "", "", "",
        population, "", "2240", tz, "2024-01-01",
    ]
    return "\t".join(cols)


def make_alt_line(alt_id, gid, lang, name, preferred=""):
    return "\t".join([str(alt_id), gid, lang, name, preferred, "", "", "", "", ""])


class FakeBatch:
    def __init__(self, store, collection):
        self.store = store
        self.collection = collection
        self.writes = []

    def set(self, doc_id, data):
        self.writes.append((doc_id, dict(data)))

    async def commit(self):
        self.store.commits += 1
        if self.store.commits in self.store.fail_on:
            raise RuntimeError("RESOURCE_EXHAUSTED: quota exceeded")
        for doc_id, data in self.writes:
            self.store.docs.setdefault(doc_id, {}).update(data)
        self.store.committed.append([doc_id for doc_id, _ in self.writes])


class FakeStore:
    """In-memory stand-in for FirestoreStore with merge-upsert semantics"""

    def __init__(self, fail_on=()):
        self.docs = {}
        self.commits = 0
        self.fail_on = set(fail_on)
        self.committed = []
        self.batches = 0
        self.collections = set()
        self.initialized_with = []

    def initialize(self, credentials_path=None):
        self.initialized_with.append(credentials_path)
        return self

    def batch(self, collection):
        self.batches += 1
        self.collections.add(collection)
        return FakeBatch(self, collection)


@pytest.fixture
def city_line():
    return make_city_line


@pytest.fixture
def alt_line():
    return make_alt_line


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def records():
    return [{"id": str(i), "name": f"City {i}", "population": i * 1000} for i in range(1, 6)]
