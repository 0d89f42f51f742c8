# bootstrap/__init__.py
from __future__ import annotations

from .exceptions import *
from .config.host_config import HostConfig, HostSettings
from .context.host_context import CapabilityFlags, HostContext, HostPaths, ServiceProviderHandle
from .health.reporter import ConsistencyIssue, HealthReporter
from .host import boot_host, boot_host_sync, boot_with_settings, build_context, build_loader, load_settings
from .loader import CommandRegistrar, ComponentFactoryTable, EntryPointActivator, LoaderEngine
from .processors.manifest_processor import ManifestProcessor
from .sequencer import BootReport, BootSequencer
from configs.config_loader import ConfigLoader

__version__ = '1.0.0'
__description__ = 'Manifold plugin host: manifest loading, registry and activation'

__all__ = [
    'boot_host', 'boot_host_sync', 'boot_with_settings', 'build_context', 'build_loader', 'load_settings',
    'HostConfig', 'HostSettings', 'ConfigLoader',
    'HostContext', 'HostPaths', 'CapabilityFlags', 'ServiceProviderHandle',
    'BootSequencer', 'BootReport', 'HealthReporter', 'ConsistencyIssue',
    'LoaderEngine', 'EntryPointActivator', 'ComponentFactoryTable', 'CommandRegistrar',
    'ManifestProcessor',
    'BootstrapError', 'ConfigurationError', 'ManifestProcessingError', 'ManifestParseError',
    'ClassificationError', 'DependencyResolutionError', 'ActivationError',
    'PersistenceError',
    '__version__', '__description__',
]
