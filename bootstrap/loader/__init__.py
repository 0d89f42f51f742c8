from .activation import ComponentFactoryTable, EntryPointActivator
from .commands import CommandRegistrar
from .engine import LOADER_NAME, LOADER_VERSION, LoaderEngine

__all__ = [
    'ComponentFactoryTable', 'EntryPointActivator', 'CommandRegistrar', 'LoaderEngine',
    'LOADER_NAME', 'LOADER_VERSION',
]
