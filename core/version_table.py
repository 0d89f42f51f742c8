from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from core.lifecycle import ComponentKind, VersionRecord, builtin_descriptor
from core.results import LoadFailureReason
from domain.ports.event_bus_port import EventBusPort
from domain.ports.persistence_port import PersistencePort, TableDefinition
from signals.readiness import REGISTRY_READY, VERSION_TABLE_READY

if TYPE_CHECKING:
    from bootstrap.context.host_context import HostContext

__all__ = ['VersionTable', 'VERSION_TABLE', 'VERSION_TABLE_NAME', 'VERSION_TABLE_VERSION']
logger = logging.getLogger(__name__)

VERSION_TABLE_NAME = 'version_table'
VERSION_TABLE_VERSION = '1.0.0'

VERSION_TABLE = TableDefinition(
    name='version_table',
    columns={'name': 'TEXT', 'type': 'TEXT', 'version': 'TEXT'},
    primary_key='name',
)


class VersionTable:
    """
    name -> (kind, version) map with an optional persistent mirror.

    The in-memory map is authoritative for membership. When a backend is
    attached it is authoritative for kind: ``get`` never reports the kind
    held only in memory. Writes to the backend are insert-if-absent, so an
    existing persisted row is never overwritten.
    """

    def __init__(self, bus: EventBusPort, persistence: Optional[PersistencePort] = None,
                 host_name: str = 'manifold', host_version: str = '1.0.0',
                 reset_on_boot: bool = True) -> None:
        self._bus = bus
        self._persistence = persistence
        self._records: Dict[str, VersionRecord] = {}
        self._host_name = host_name
        self._host_version = host_version
        self._reset_on_boot = reset_on_boot
        self._ready = False
        self.persistence_failures = 0

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def host_name(self) -> str:
        return self._host_name

    @property
    def has_backend(self) -> bool:
        return self._persistence is not None

    async def init(self, context: Optional['HostContext'] = None) -> None:
        if self._ready:
            logger.warning("Version table already initialized; ignoring repeat init()")
            return

        if self._persistence is not None:
            op = self._persistence.reset_table if self._reset_on_boot else self._persistence.ensure_table
            await self._backend(op, VERSION_TABLE)

        await self.set(self._host_name, ComponentKind.KERNEL, self._host_version)
        await self.set(VERSION_TABLE_NAME, ComponentKind.SERVICE_PROVIDER, VERSION_TABLE_VERSION)

        if context is not None:
            def _add_own_descriptor(_signal: Any) -> None:
                context.registry.add(builtin_descriptor(VERSION_TABLE_NAME, VERSION_TABLE_VERSION,
                                                        'Component version bookkeeping'))

            # Ordering: the registry must initialize after this subscription or
            # the descriptor is never added.
            context.bus.once(REGISTRY_READY, _add_own_descriptor)
            context.flags.version_loaded = True

        self._ready = True
        logger.info("Version table ready (%d seed records, backend=%s)",
                    len(self._records), type(self._persistence).__name__ if self._persistence else 'none')
        await self._bus.emit(VERSION_TABLE_READY, {'component': VERSION_TABLE_NAME})

    async def set(self, name: str, kind: ComponentKind, version: str) -> None:
        record = VersionRecord(name=name, kind=ComponentKind.parse(kind), version=str(version))
        self._records[name] = record
        logger.debug("Version set: %s (%s) %s", name, record.kind.value, record.version)
        if self._persistence is not None:
            await self._backend(self._persistence.upsert_if_absent, VERSION_TABLE.name,
                                record.to_row(), {'name': name})

    async def remove(self, name: str) -> None:
        if name in self._records:
            del self._records[name]
            logger.debug("Version removed: %s", name)
        else:
            logger.info("'%s' is not in the version table", name)
        if self._persistence is not None:
            await self._backend(self._persistence.delete_where, VERSION_TABLE.name, {'name': name})

    async def get(self, name: str) -> Optional[VersionRecord]:
        row = None
        if self._persistence is not None:
            row = await self._backend(self._persistence.find_where, VERSION_TABLE.name, {'name': name})

        if name in self._records:
            if row:
                return VersionRecord.from_row(row)
            return VersionRecord(name=name, kind=ComponentKind.UNKNOWN, version=self._records[name].version)

        if row:
            return VersionRecord.from_row(row)
        return None

    def snapshot(self) -> Dict[str, VersionRecord]:
        return dict(self._records)

    def names(self) -> List[str]:
        return list(self._records)

    async def persisted(self) -> List[VersionRecord]:
        if self._persistence is None:
            return []
        rows = await self._backend(self._persistence.list_all, VERSION_TABLE.name)
        return [VersionRecord.from_row(r) for r in rows or []]

    async def _backend(self, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except Exception as exc:
            self.persistence_failures += 1
            logger.error("%s: version table call %s failed, keeping in-memory state: %s",
                         LoadFailureReason.PERSISTENCE_WRITE_FAILED.value, getattr(func, '__name__', func), exc)
            return None

    def __contains__(self, name: str) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)
