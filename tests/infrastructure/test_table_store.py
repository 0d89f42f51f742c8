import pytest

from bootstrap.exceptions import PersistenceError
from domain.ports.persistence_port import PersistencePort, TableDefinition
from infrastructure.persistence.table_store import InMemoryTableStore, SQLiteTableStore, TableStore

VERSIONS = TableDefinition(name='versions', columns={'name': 'TEXT', 'type': 'TEXT', 'version': 'TEXT'})


@pytest.fixture(params=['memory', 'sqlite'])
def store(request, tmp_path):
    store = TableStore({'provider': request.param, 'db_path': str(tmp_path / 'host.db')})
    store.ensure_table(VERSIONS)
    yield store
    store.close()


def test_facade_satisfies_port(store):
    assert isinstance(store, PersistencePort)


def test_upsert_if_absent_keeps_first_row(store):
    first = store.upsert_if_absent('versions', {'name': 'Alpha', 'type': 'FeatureUnit', 'version': '1'},
                                   {'name': 'Alpha'})
    second = store.upsert_if_absent('versions', {'name': 'Alpha', 'type': 'FeatureUnit', 'version': '2'},
                                    {'name': 'Alpha'})

    assert first['version'] == '1'
    assert second['version'] == '1'
    assert len(store.list_all('versions')) == 1


def test_find_and_delete(store):
    store.upsert_if_absent('versions', {'name': 'Alpha', 'type': 'FeatureUnit', 'version': '1'}, {'name': 'Alpha'})

    assert store.find_where('versions', {'name': 'Alpha'})['type'] == 'FeatureUnit'
    assert store.delete_where('versions', {'name': 'Alpha'}) is True
    assert store.delete_where('versions', {'name': 'Alpha'}) is False
    assert store.find_where('versions', {'name': 'Alpha'}) is None


def test_reset_table_drops_rows(store):
    store.upsert_if_absent('versions', {'name': 'Alpha', 'type': 'FeatureUnit', 'version': '1'}, {'name': 'Alpha'})
    store.reset_table(VERSIONS)

    assert store.list_all('versions') == []
    assert 'versions' in store.list_tables()


def test_unknown_provider_falls_back_to_memory():
    store = TableStore({'provider': 'postgres'})
    assert isinstance(store._impl, InMemoryTableStore)


def test_sqlite_rejects_unsafe_identifiers(tmp_path):
    store = SQLiteTableStore({'db_path': str(tmp_path / 'host.db')})
    with pytest.raises(PersistenceError):
        store.ensure_table(TableDefinition(name='versions; DROP TABLE x', columns={'name': 'TEXT'}))
    with pytest.raises(PersistenceError):
        store.find_where('versions', {'name = 1 OR 1': 'x'})
    store.close()


def test_memory_store_requires_existing_table():
    store = InMemoryTableStore()
    with pytest.raises(PersistenceError):
        store.find_where('missing', {'name': 'Alpha'})
