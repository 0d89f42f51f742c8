from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

import shortuuid

from bootstrap.exceptions import ActivationError
from core.lifecycle import ComponentDescriptor
from runtime.utils import import_by_path, load_module_from_path, safe_module_name

if TYPE_CHECKING:
    from bootstrap.context.host_context import HostContext

logger = logging.getLogger(__name__)

ComponentFactory = Callable[[], Any]


class ComponentFactoryTable:
    """
    Explicit name -> factory map consulted before any file is imported.

    A factory is a zero-argument callable returning the component object whose
    entry point the loader will call.
    """

    def __init__(self, factories: Optional[Mapping[str, ComponentFactory]] = None) -> None:
        self._factories: Dict[str, ComponentFactory] = dict(factories or {})

    @classmethod
    def from_import_paths(cls, paths: Mapping[str, str]) -> 'ComponentFactoryTable':
        """Build a table from ``{name: 'pkg.mod:object'}``; the imported object is the component."""
        table = cls()
        for name, path in paths.items():
            try:
                target = import_by_path(path)
            except (ImportError, AttributeError, ValueError) as exc:
                logger.error("Factory for '%s' could not be imported from '%s': %s", name, path, exc)
                continue
            table.register_object(name, target)
        return table

    def register(self, name: str, factory: ComponentFactory) -> None:
        if name in self._factories:
            logger.warning("Replacing factory for component '%s'", name)
        self._factories[name] = factory

    def register_object(self, name: str, target: Any) -> None:
        self.register(name, lambda: target)

    def create(self, name: str) -> Optional[Any]:
        factory = self._factories.get(name)
        if factory is None:
            return None
        return factory()

    def names(self):
        return sorted(self._factories)

    def __contains__(self, name: str) -> bool:
        return name in self._factories

    def __len__(self) -> int:
        return len(self._factories)


class EntryPointActivator:
    """Finds a component's object and calls its entry point."""

    def __init__(self, factories: Optional[ComponentFactoryTable] = None, allow_dynamic_import: bool = True) -> None:
        self.factories = factories or ComponentFactoryTable()
        self.allow_dynamic_import = allow_dynamic_import

    def resolve_target(self, descriptor: ComponentDescriptor) -> Optional[Any]:
        """
        Return the object named ``descriptor.name``, or None if nothing provides it.

        Import errors from the entry file propagate.
        """
        if descriptor.name in self.factories:
            logger.debug("Resolving '%s' from the factory table", descriptor.name)
            return self.factories.create(descriptor.name)

        if not self.allow_dynamic_import:
            logger.info("No factory for '%s' and dynamic import is disabled", descriptor.name)
            return None

        module_name = f'_manifold_component_{safe_module_name(descriptor.name)}_{shortuuid.uuid()[:8]}'
        module = load_module_from_path(descriptor.entry_file, module_name)
        return getattr(module, descriptor.name, None)

    async def invoke(self, descriptor: ComponentDescriptor, target: Any, context: 'HostContext') -> Any:
        entry_point = getattr(target, descriptor.entry_point_name, None)
        if not callable(entry_point):
            raise ActivationError(
                f"Entry point '{descriptor.entry_point_name}' is not callable on '{descriptor.name}'",
                component_id=descriptor.name,
            )
        logger.debug("Calling %s.%s()", descriptor.name, descriptor.entry_point_name)
        result = entry_point(context)
        if inspect.isawaitable(result):
            result = await result
        return result

    @staticmethod
    def has_entry_point(descriptor: ComponentDescriptor, target: Any) -> bool:
        return bool(descriptor.entry_point_name) and callable(getattr(target, descriptor.entry_point_name, None))
