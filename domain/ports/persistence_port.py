# domain/ports/persistence_port.py

"""Table-oriented key/value persistence used to mirror host state."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

Row = Dict[str, Any]


@dataclass(frozen=True)
class TableDefinition:
    """Column layout of one persisted table. Column types are SQL type names."""
    name: str
    columns: Mapping[str, str] = field(default_factory=dict)
    primary_key: str = 'name'


@runtime_checkable
class PersistencePort(Protocol):
    """Blocking persistence backend. Callers on the event loop wrap these in worker threads."""

    def ensure_table(self, definition: TableDefinition) -> None:
        ...

    def reset_table(self, definition: TableDefinition) -> None:
        ...

    def upsert_if_absent(self, table: str, row: Row, key: Mapping[str, Any]) -> Optional[Row]:
        """
        Insert *row* unless a row matching *key* exists.

        Returns:
            The row stored under *key* afterwards (existing or new), or None on failure.
        """
        ...

    def delete_where(self, table: str, key: Mapping[str, Any]) -> bool:
        ...

    def find_where(self, table: str, key: Mapping[str, Any]) -> Optional[Row]:
        ...

    def list_all(self, table: str) -> List[Row]:
        ...

    def list_tables(self) -> List[str]:
        ...
