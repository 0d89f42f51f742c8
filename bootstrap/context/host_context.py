from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Optional

import shortuuid

from core.registry.component_registry import ComponentRegistry
from core.version_table import VersionTable
from domain.ports.chat_client_port import ChatClientPort
from domain.ports.event_bus_port import EventBusPort
from domain.ports.persistence_port import PersistencePort

if TYPE_CHECKING:
    from bootstrap.config.host_config import HostSettings

logger = logging.getLogger(__name__)


@dataclass
class CapabilityFlags:
    """Which built-in service providers are up. Read by the loader for gating."""
    registry_loaded: bool = False
    version_loaded: bool = False
    loader_loaded: bool = False
    persistence_loaded: bool = False
    chat_client_loaded: bool = False

    def as_dict(self) -> Dict[str, bool]:
        return {
            'registry_loaded': self.registry_loaded,
            'version_loaded': self.version_loaded,
            'loader_loaded': self.loader_loaded,
            'persistence_loaded': self.persistence_loaded,
            'chat_client_loaded': self.chat_client_loaded,
        }


@dataclass(frozen=True)
class HostPaths:
    """Absolute resource roots. Classification is by prefix against these."""
    root: Path
    private_service_providers: Path
    public_service_providers: Path
    feature_units: Path

    @classmethod
    def under(cls, root: Path, private: str = 'frameworks/PrivateFrameworks',
              public: str = 'frameworks/PublicFrameworks', modules: str = 'modules') -> 'HostPaths':
        root = Path(root).resolve()
        return cls(
            root=root,
            private_service_providers=(root / private).resolve(),
            public_service_providers=(root / public).resolve(),
            feature_units=(root / modules).resolve(),
        )


@dataclass
class ServiceProviderHandle:
    """A live service provider: its descriptor name, the activated object, and what it offers."""
    name: str
    target: Any
    capabilities: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def for_target(cls, name: str, target: Any) -> 'ServiceProviderHandle':
        provides = getattr(target, 'PROVIDES', None) or ()
        if isinstance(provides, str):
            provides = (provides,)
        return cls(name=name, target=target, capabilities=frozenset(str(p) for p in provides))

    def provides(self, capability: str) -> bool:
        return capability in self.capabilities


class HostContext:
    """
    Everything a component can reach during activation.

    Handed to every entry point in place of a global. The maps of live
    components change only through ``attach_*`` and ``detach_*``.
    """

    def __init__(self, *, settings: 'HostSettings', paths: HostPaths, bus: EventBusPort,
                 registry: Optional[ComponentRegistry] = None, versions: Optional[VersionTable] = None,
                 persistence: Optional[PersistencePort] = None, chat_client: Optional[ChatClientPort] = None,
                 run_id: Optional[str] = None) -> None:
        self.run_id = run_id or f'run_{shortuuid.uuid()[:12]}'
        self.settings = settings
        self.paths = paths
        self.bus = bus
        self.persistence = persistence
        self.chat_client = chat_client
        self.registry = registry if registry is not None else ComponentRegistry()
        self.versions = versions if versions is not None else VersionTable(
            bus,
            persistence=persistence,
            host_name=settings.host_name,
            host_version=settings.host_version,
            reset_on_boot=settings.persistence.reset_version_table,
        )
        self.flags = CapabilityFlags()
        self._service_providers: Dict[str, ServiceProviderHandle] = {}
        self._feature_units: Dict[str, Any] = {}
        self.logger = logging.getLogger('manifold.host')

    @property
    def service_providers(self) -> Dict[str, ServiceProviderHandle]:
        return dict(self._service_providers)

    @property
    def feature_units(self) -> Dict[str, Any]:
        return dict(self._feature_units)

    def log(self, message: str, *args: Any, level: int = logging.INFO) -> None:
        self.logger.log(level, message, *args)

    def attach_service_provider(self, name: str, target: Any) -> ServiceProviderHandle:
        handle = ServiceProviderHandle.for_target(name, target)
        self._service_providers[name] = handle
        logger.debug("Attached service provider '%s' (provides=%s)", name, sorted(handle.capabilities))
        return handle

    def detach_service_provider(self, name: str) -> Optional[ServiceProviderHandle]:
        return self._service_providers.pop(name, None)

    def attach_feature_unit(self, name: str, target: Any) -> None:
        self._feature_units[name] = target
        logger.debug("Attached feature unit '%s'", name)

    def detach_feature_unit(self, name: str) -> Optional[Any]:
        return self._feature_units.pop(name, None)

    def get_service_provider(self, name: str) -> Optional[ServiceProviderHandle]:
        return self._service_providers.get(name)

    def find_provider_of(self, capability: str) -> Optional[ServiceProviderHandle]:
        for handle in self._service_providers.values():
            if handle.provides(capability):
                return handle
        return None

    def __repr__(self) -> str:
        return (f'HostContext(run_id={self.run_id!r}, registry={len(self.registry)}, '
                f'versions={len(self.versions)}, flags={self.flags.as_dict()})')
