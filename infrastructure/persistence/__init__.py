# infrastructure/persistence/__init__.py
# Generic persistence module - database-agnostic

from .table_store import InMemoryTableStore, SQLiteTableStore, TableStore

__all__ = ['TableStore', 'InMemoryTableStore', 'SQLiteTableStore']
