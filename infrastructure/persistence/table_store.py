import logging
import re
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional

from bootstrap.exceptions import PersistenceError
from domain.ports.persistence_port import PersistencePort, Row, TableDefinition
from infrastructure.persistence.sqlite_base import SQLiteBackend

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
_COLUMN_TYPES = {'TEXT', 'INTEGER', 'REAL', 'BLOB', 'NUMERIC'}


def _check_identifier(value: str) -> str:
    if not isinstance(value, str) or not _IDENTIFIER.match(value):
        raise PersistenceError(f"Illegal SQL identifier: {value!r}")
    return value


class TableStore(PersistencePort):
    """Table store for host state that supports multiple backends.

    ``provider`` picks the implementation: ``sqlite`` or ``memory``.
    """

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config or {}
        self.provider = self.config.get('provider', 'sqlite')

        if self.provider == 'sqlite':
            self._impl = SQLiteTableStore(self.config)
        elif self.provider == 'memory':
            self._impl = InMemoryTableStore(self.config)
        else:
            logger.warning(f"Unknown provider '{self.provider}', using memory")
            self._impl = InMemoryTableStore(self.config)

        logger.info(f'TableStore initialized (provider: {self.provider})')

    def ensure_table(self, definition: TableDefinition) -> None:
        self._impl.ensure_table(definition)

    def reset_table(self, definition: TableDefinition) -> None:
        self._impl.reset_table(definition)

    def upsert_if_absent(self, table: str, row: Row, key: Mapping[str, Any]) -> Optional[Row]:
        return self._impl.upsert_if_absent(table, row, key)

    def delete_where(self, table: str, key: Mapping[str, Any]) -> bool:
        return self._impl.delete_where(table, key)

    def find_where(self, table: str, key: Mapping[str, Any]) -> Optional[Row]:
        return self._impl.find_where(table, key)

    def list_all(self, table: str) -> List[Row]:
        return self._impl.list_all(table)

    def list_tables(self) -> List[str]:
        return self._impl.list_tables()

    def close(self):
        if hasattr(self._impl, 'close'):
            self._impl.close()

    @property
    def operation_count(self) -> int:
        return getattr(self._impl, 'operation_count', 0)


class InMemoryTableStore:
    """In-memory implementation of the table store"""

    def __init__(self, config: Dict[str, Any] = None):
        self._tables: Dict[str, Dict[str, Row]] = {}
        self._keys: Dict[str, str] = {}
        self._lock = Lock()
        self.operation_count = 0
        logger.info('In-memory table store initialized')

    def _table(self, table: str) -> Dict[str, Row]:
        if table not in self._tables:
            raise PersistenceError(f"Table '{table}' does not exist", table=table)
        return self._tables[table]

    def _key_of(self, table: str, key: Mapping[str, Any]) -> str:
        pk = self._keys[table]
        if pk not in key:
            raise PersistenceError(f"Lookup on '{table}' must include primary key '{pk}'", table=table)
        return str(key[pk])

    def ensure_table(self, definition: TableDefinition) -> None:
        with self._lock:
            self.operation_count += 1
            self._tables.setdefault(definition.name, {})
            self._keys[definition.name] = definition.primary_key

    def reset_table(self, definition: TableDefinition) -> None:
        with self._lock:
            self.operation_count += 1
            self._tables[definition.name] = {}
            self._keys[definition.name] = definition.primary_key
            logger.debug(f"Reset table '{definition.name}' (memory)")

    def upsert_if_absent(self, table: str, row: Row, key: Mapping[str, Any]) -> Optional[Row]:
        with self._lock:
            self.operation_count += 1
            rows = self._table(table)
            pk = self._key_of(table, key)
            if pk not in rows:
                rows[pk] = dict(row)
            return dict(rows[pk])

    def delete_where(self, table: str, key: Mapping[str, Any]) -> bool:
        with self._lock:
            self.operation_count += 1
            return self._table(table).pop(self._key_of(table, key), None) is not None

    def find_where(self, table: str, key: Mapping[str, Any]) -> Optional[Row]:
        with self._lock:
            self.operation_count += 1
            row = self._table(table).get(self._key_of(table, key))
            return dict(row) if row is not None else None

    def list_all(self, table: str) -> List[Row]:
        with self._lock:
            return [dict(r) for r in self._table(table).values()]

    def list_tables(self) -> List[str]:
        with self._lock:
            return sorted(self._tables)


class SQLiteTableStore(SQLiteBackend):
    """SQLite implementation of the table store"""

    def _column_sql(self, definition: TableDefinition) -> str:
        parts = []
        for column, col_type in definition.columns.items():
            col_type = str(col_type).upper()
            if col_type not in _COLUMN_TYPES:
                raise PersistenceError(f"Unsupported column type {col_type!r}", table=definition.name)
            suffix = ' PRIMARY KEY' if column == definition.primary_key else ''
            parts.append(f'{_check_identifier(column)} {col_type}{suffix}')
        return ', '.join(parts)

    def _create_sql(self, definition: TableDefinition) -> str:
        table = _check_identifier(definition.name)
        return f'CREATE TABLE IF NOT EXISTS {table} ({self._column_sql(definition)})'

    def ensure_table(self, definition: TableDefinition) -> None:
        self.write(self._create_sql(definition))
        logger.debug(f"Ensured table '{definition.name}'")

    def reset_table(self, definition: TableDefinition) -> None:
        create = self._create_sql(definition)
        self.write_batch([(f'DROP TABLE IF EXISTS {definition.name}', ()), (create, ())])
        logger.info(f"Reset table '{definition.name}'")

    @staticmethod
    def _where(key: Mapping[str, Any]):
        if not key:
            raise PersistenceError('Refusing an unconstrained statement')
        clause = ' AND '.join(f'{_check_identifier(k)} = ?' for k in key)
        return clause, tuple(key.values())

    def upsert_if_absent(self, table: str, row: Row, key: Mapping[str, Any]) -> Optional[Row]:
        table = _check_identifier(table)
        columns = ', '.join(_check_identifier(c) for c in row)
        placeholders = ', '.join('?' for _ in row)
        self.write(f'INSERT OR IGNORE INTO {table} ({columns}) VALUES ({placeholders})', tuple(row.values()))
        return self.find_where(table, key)

    def delete_where(self, table: str, key: Mapping[str, Any]) -> bool:
        table = _check_identifier(table)
        clause, params = self._where(key)
        return self.write(f'DELETE FROM {table} WHERE {clause}', params) > 0

    def find_where(self, table: str, key: Mapping[str, Any]) -> Optional[Row]:
        table = _check_identifier(table)
        clause, params = self._where(key)
        rows = self.fetch_all(f'SELECT * FROM {table} WHERE {clause} LIMIT 1', params)
        return dict(rows[0]) if rows else None

    def list_all(self, table: str) -> List[Row]:
        table = _check_identifier(table)
        return [dict(r) for r in self.fetch_all(f'SELECT * FROM {table}')]

    def list_tables(self) -> List[str]:
        rows = self.fetch_all("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
        return [r['name'] for r in rows]
