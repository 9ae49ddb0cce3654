"""
test_store.py – Process-wide store accessor and PostgreSQL helper behaviour.

No database is contacted: ``PostgresStore`` is swapped for a fake, and the
SQL helpers run against fake connections.
"""

import psycopg
import pytest

from flockwatch.common import db, store as store_module
from flockwatch.common.errors import StoreUnavailable
from flockwatch.common.store import close_store, get_store, use_store

from conftest import InMemoryStore, make_event


class CountingStore(InMemoryStore):
    built = 0
    closed = 0

    def __init__(self):
        super().__init__()
        CountingStore.built += 1

    def close(self):
        CountingStore.closed += 1


@pytest.fixture
def counting_store(monkeypatch):
    CountingStore.built = 0
    CountingStore.closed = 0
    monkeypatch.setattr(db, "PostgresStore", CountingStore)
    return CountingStore


class TestStoreAccessor:

    def test_first_call_builds_later_calls_reuse(self, counting_store):
        first = get_store()
        second = get_store()
        assert first is second
        assert counting_store.built == 1

    def test_installed_store_is_returned(self):
        fake = InMemoryStore()
        use_store(fake)
        assert get_store() is fake

    def test_close_store_releases_and_resets(self, counting_store):
        get_store()
        close_store()
        assert counting_store.closed == 1
        assert store_module._store is None

    def test_failed_initialisation_is_not_cached(self, monkeypatch):
        def _unreachable():
            raise StoreUnavailable("could not connect")

        monkeypatch.setattr(db, "PostgresStore", _unreachable)
        with pytest.raises(StoreUnavailable):
            get_store()
        assert store_module._store is None


class TestErrorTranslation:

    def test_psycopg_errors_become_store_unavailable(self):
        @db._store_call
        def _query():
            raise psycopg.OperationalError("server closed the connection unexpectedly")

        with pytest.raises(StoreUnavailable) as info:
            _query()
        assert isinstance(info.value.__cause__, psycopg.OperationalError)

    def test_other_errors_pass_through(self):
        @db._store_call
        def _query():
            raise KeyError("bug")

        with pytest.raises(KeyError):
            _query()


class FakeCursor:
    def __init__(self, rowcounts):
        self._rowcounts = list(rowcounts)
        self.rowcount = -1
        self.executed = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.executed.append(params)
        self.rowcount = self._rowcounts.pop(0)


class FakeConnection:
    def __init__(self, rowcounts):
        self.cur = FakeCursor(rowcounts)

    def cursor(self, **kwargs):
        return self.cur


class TestSqlHelpers:

    def test_insert_events_counts_only_matched_rows(self):
        conn = FakeConnection([1, 0, 1])
        events = [make_event("h1", value=1), make_event("ghost", value=2), make_event("h1", value=3)]

        assert db.insert_events(conn, events) == 2
        assert [p["house_key"] for p in conn.cur.executed] == ["h1", "ghost", "h1"]
        assert '"houseId":"h1"' in conn.cur.executed[0]["payload"]

    def test_update_house_state_reports_match(self):
        assert db.update_house_state(FakeConnection([1]), "h1", 100, 3, "F1") is True
        assert db.update_house_state(FakeConnection([0]), "nobody", 100, 3, "F1") is False

    def test_fetch_house_rejects_unknown_column(self):
        with pytest.raises(ValueError):
            db.fetch_house(FakeConnection([]), "name; DROP TABLE houses", "x")


class TestProtocol:

    @pytest.mark.parametrize("implementation", [db.PostgresStore, InMemoryStore])
    def test_implementations_cover_every_documented_operation(self, implementation):
        operations = [
            name for name, member in vars(store_module.SensorStore).items()
            if callable(member) and not name.startswith("_")
        ]
        assert len(operations) == 6
        for name in operations:
            assert getattr(store_module.SensorStore, name).__doc__
            assert callable(getattr(implementation, name, None)), name
