import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Optional

from core.lifecycle import ComponentDescriptor, ComponentKind, builtin_descriptor
from signals.readiness import REGISTRY_READY, VERSION_TABLE_READY

if TYPE_CHECKING:
    from bootstrap.context.host_context import HostContext
    from bootstrap.processors.manifest_processor import ManifestProcessor

logger = logging.getLogger(__name__)

REGISTRY_NAME = 'registry'
REGISTRY_VERSION = '1.0.0'


class ComponentRegistry:
    """
    Insertion-ordered catalog of every component descriptor the host knows about.

    The registry is a plain list on purpose: lookups are linear, names are not
    deduplicated, and removal drops only the first entry with a matching name.
    Catalog sizes are in the tens.
    """

    def __init__(self) -> None:
        self._entries: List[ComponentDescriptor] = []
        self._initialized = False
        logger.info("ComponentRegistry initialized")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self, context: 'HostContext') -> None:
        """
        Bring the registry online and announce it with ``REGISTRY_READY``.
        """
        if self._initialized:
            logger.debug("Registry already initialized; ignoring repeat call")
            return

        async def _record_own_version(_signal: Any) -> None:
            await context.versions.set(REGISTRY_NAME, ComponentKind.SERVICE_PROVIDER, REGISTRY_VERSION)

        # Ordering: once() only sees emits that happen after this line. When the
        # version table was initialized first its ready signal is already gone,
        # so the version is written directly instead.
        if context.versions.is_ready:
            await _record_own_version(None)
        else:
            context.bus.once(VERSION_TABLE_READY, _record_own_version)

        self.add(builtin_descriptor(REGISTRY_NAME, REGISTRY_VERSION, 'Catalog of loaded components'))
        self._initialized = True
        context.flags.registry_loaded = True
        await context.bus.emit(REGISTRY_READY, {'component': REGISTRY_NAME})
        logger.info("Registry initialized and accepting requests")

    def add(self, descriptor: ComponentDescriptor) -> None:
        if descriptor is None or not getattr(descriptor, 'name', ''):
            logger.error("Rejected registry entry with no name: %r", descriptor)
            return
        self._entries.append(descriptor)
        logger.info("Added entry '%s' (%s)", descriptor.name, descriptor.kind.value)
        logger.debug("  identifier=%s version=%s", descriptor.identifier, descriptor.version)

    def add_from_manifest(self, manifest_path: Path, processor: 'ManifestProcessor') -> Optional[ComponentDescriptor]:
        """
        Parse *manifest_path* and add the resulting descriptor.

        Used by service providers that bootstrap outside the loader and still
        want a catalog entry. Parse failures are logged, not raised.
        """
        from bootstrap.exceptions import ManifestParseError

        try:
            descriptor = processor.parse_file(Path(manifest_path))
        except ManifestParseError as exc:
            logger.error("Could not add entry from manifest %s: %s", manifest_path, exc)
            return None
        self.add(descriptor)
        return descriptor

    def remove(self, name: str) -> bool:
        for index, entry in enumerate(self._entries):
            if entry.name == name:
                del self._entries[index]
                logger.info("Removed entry '%s' from registry", name)
                return True
        logger.info("Entry '%s' not found in registry", name)
        return False

    def find(self, name: str) -> Optional[ComponentDescriptor]:
        for entry in self._entries:
            if entry.name == name:
                return entry
        return None

    def all(self) -> List[ComponentDescriptor]:
        return list(self._entries)

    def names(self) -> List[str]:
        return [entry.name for entry in self._entries]

    def count(self, kind: Optional[ComponentKind] = None) -> int:
        if kind is None:
            return len(self._entries)
        return sum(1 for entry in self._entries if entry.kind == kind)

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Registry cleared")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: str) -> bool:
        return self.find(name) is not None
