import plistlib
import sys
import textwrap
from pathlib import Path
from typing import Any, Dict, Optional

import pytest


def setup_path():
    project_root = Path(__file__).resolve().parent.parent
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


setup_path()

from bootstrap.config.host_config import HostSettings  # noqa: E402
from bootstrap.context.host_context import HostContext, HostPaths  # noqa: E402
from infrastructure.event_bus.memory_event_bus import MemoryEventBus  # noqa: E402
from infrastructure.persistence.table_store import InMemoryTableStore  # noqa: E402

PRIVATE = 'frameworks/PrivateFrameworks'
PUBLIC = 'frameworks/PublicFrameworks'
MODULES = 'modules'

# Entry file whose object records calls on the host context it receives.
RECORDING_SOURCE = '''
class _Component:
    PROVIDES = ({provides!r},)

    def __init__(self):
        self.calls = 0

    def {entry}(self, host):
        self.calls += 1
        host.log("{name} started")


{name} = _Component()
'''

FAILING_SOURCE = '''
class _Component:
    def {entry}(self, host):
        raise RuntimeError("{name} refuses to start")


{name} = _Component()
'''


class HostTree:
    """Builds a host root with service-provider and feature-unit directories."""

    def __init__(self, root: Path):
        self.root = root
        for rel in (PRIVATE, PUBLIC, MODULES):
            (root / rel).mkdir(parents=True, exist_ok=True)

    def write_manifest(self, directory: Path, data: Dict[str, Any], filename: str = 'info.plist') -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / filename
        path.write_bytes(plistlib.dumps(data))
        return path

    def write_source(self, directory: Path, name: str, entry: str = 'start', failing: bool = False,
                     filename: Optional[str] = None) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        template = FAILING_SOURCE if failing else RECORDING_SOURCE
        path = directory / (filename or f'{name}.py')
        path.write_text(textwrap.dedent(template.format(name=name, entry=entry, provides=name.lower())),
                        encoding='utf-8')
        return path

    def service_provider(self, name: str, *, root: str = PRIVATE, entry: str = 'start', version: str = '1.0.0',
                         failing: bool = False, structure: Optional[Dict[str, str]] = None,
                         directory: Optional[Path] = None, with_source: bool = True) -> Path:
        directory = directory or (self.root / root / name)
        if with_source:
            self.write_source(directory, name, entry=entry, failing=failing)
        data = {
            'Framework Name': name,
            'Framework Description': f'{name} service provider',
            'Framework Identifier': f'com.example.{name}',
            'Framework Version': version,
            'Framework Structure': {'Main': f'{name}.py', **(structure or {})},
            'Framework Entry': entry,
        }
        return self.write_manifest(directory, data)

    def feature_unit(self, name: str, *, entry: str = 'start', version: str = '1.0.0', failing: bool = False,
                     settings: Optional[Dict[str, Any]] = None, abilities: Optional[Dict[str, Any]] = None,
                     structure: Optional[Dict[str, str]] = None, directory: Optional[Path] = None,
                     extra: Optional[Dict[str, Any]] = None, with_source: bool = True) -> Path:
        directory = directory or (self.root / MODULES / name)
        if with_source:
            self.write_source(directory, name, entry=entry or 'start', failing=failing)
        data = {
            'Module Name': name,
            'Module Description': f'{name} feature unit',
            'Module Identifier': f'com.example.{name}',
            'Module Version': version,
            'Module Structure': {'Main': f'{name}.py', **(structure or {})},
            'Module Settings': {'moduleEntryPoint': entry, **(settings or {})},
        }
        if abilities is not None:
            data['Module Abilities'] = abilities
        data.update(extra or {})
        return self.write_manifest(directory, data)


@pytest.fixture
def host_tree(tmp_path) -> HostTree:
    return HostTree(tmp_path)


def make_settings(**overrides) -> HostSettings:
    return HostSettings.from_mapping(overrides)


def make_context(root: Path, settings: Optional[HostSettings] = None, **kwargs) -> HostContext:
    settings = settings or make_settings()
    return HostContext(settings=settings, paths=HostPaths.under(root), bus=kwargs.pop('bus', MemoryEventBus()),
                       **kwargs)


@pytest.fixture
def context(host_tree) -> HostContext:
    return make_context(host_tree.root)


@pytest.fixture
def persistent_context(host_tree) -> HostContext:
    return make_context(host_tree.root, persistence=InMemoryTableStore())


@pytest.fixture
def context_factory(host_tree):
    """``context_factory(settings=..., persistence=..., chat_client=...)`` over the test host root."""
    def _factory(settings: Optional[HostSettings] = None, **kwargs) -> HostContext:
        return make_context(host_tree.root, settings, **kwargs)
    return _factory


@pytest.fixture
def settings_factory():
    return make_settings
