from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional

__all__ = [
    'ComponentKind', 'Capability', 'ArgumentType', 'CommandArgument', 'CommandSpec',
    'SubComponentRef', 'ComponentDescriptor', 'VersionRecord', 'builtin_descriptor',
]
logger = logging.getLogger(__name__)


class ComponentKind(str, Enum):
    SERVICE_PROVIDER = 'ServiceProvider'
    FEATURE_UNIT = 'FeatureUnit'
    KERNEL = 'Kernel'
    UNKNOWN = 'Unknown'

    @classmethod
    def parse(cls, value: Any) -> 'ComponentKind':
        if isinstance(value, ComponentKind):
            return value
        try:
            return cls(str(value))
        except ValueError:
            logger.debug("Unrecognised component kind '%s', using Unknown", value)
            return cls.UNKNOWN


class Capability(str, Enum):
    NEEDS_CHAT_CLIENT = 'needs-chat-client'
    WANTS_CHAT_CLIENT = 'wants-chat-client'
    CAN_INIT_COMMANDS = 'can-init-commands'


class ArgumentType(IntEnum):
    """Option types understood by the chat platform's command API."""
    SUB_COMMAND = 1
    SUB_COMMAND_GROUP = 2
    STRING = 3
    INTEGER = 4
    BOOLEAN = 5
    USER = 6
    CHANNEL = 7
    ROLE = 8
    MENTIONABLE = 9
    NUMBER = 10
    ATTACHMENT = 11

    @classmethod
    def coerce(cls, value: Any) -> 'ArgumentType':
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            logger.warning("Invalid argument type '%s', falling back to STRING", value)
            return cls.STRING


@dataclass(frozen=True)
class CommandArgument:
    name: str
    description: str = 'No description provided.'
    type: ArgumentType = ArgumentType.STRING
    required: bool = False


@dataclass(frozen=True)
class CommandSpec:
    name: str
    description: str
    arguments: List[CommandArgument] = field(default_factory=list)

    @property
    def has_arguments(self) -> bool:
        return bool(self.arguments)


@dataclass(frozen=True)
class SubComponentRef:
    label: str
    manifest_path: Path


@dataclass
class ComponentDescriptor:
    """Normalized record for one component, built from its manifest.

    ``name`` is the lookup key in the registry and version table. The registry
    does not enforce its uniqueness.
    """
    name: str
    kind: ComponentKind
    entry_file: Path
    description: str = ''
    identifier: str = ''
    version: str = ''
    entry_point_name: str = ''
    sub_components: List[SubComponentRef] = field(default_factory=list)
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    command_specs: Dict[str, CommandSpec] = field(default_factory=dict)
    previously_registered_commands: bool = False
    debug_mode: bool = False
    settings: Dict[str, Any] = field(default_factory=dict)
    manifest_path: Optional[Path] = None

    @property
    def needs_chat_client(self) -> bool:
        return Capability.NEEDS_CHAT_CLIENT.value in self.capabilities

    @property
    def wants_chat_client(self) -> bool:
        return Capability.WANTS_CHAT_CLIENT.value in self.capabilities

    @property
    def can_init_commands(self) -> bool:
        return Capability.CAN_INIT_COMMANDS.value in self.capabilities

    @property
    def root_dir(self) -> Path:
        if self.manifest_path is not None:
            return self.manifest_path.parent
        return self.entry_file.parent

    def summary(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'kind': self.kind.value,
            'identifier': self.identifier,
            'version': self.version,
            'entry_file': str(self.entry_file),
            'entry_point': self.entry_point_name,
            'sub_components': [ref.label for ref in self.sub_components],
            'capabilities': sorted(self.capabilities),
            'commands': sorted(self.command_specs),
        }


@dataclass(frozen=True)
class VersionRecord:
    name: str
    kind: ComponentKind
    version: str

    def to_row(self) -> Dict[str, str]:
        return {'name': self.name, 'type': self.kind.value, 'version': self.version}

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'VersionRecord':
        return cls(
            name=str(row.get('name', '')),
            kind=ComponentKind.parse(row.get('type')),
            version=str(row.get('version', '')),
        )


def builtin_descriptor(name: str, version: str, description: str = '') -> ComponentDescriptor:
    """Descriptor for a service provider that ships inside the host itself."""
    return ComponentDescriptor(
        name=name,
        kind=ComponentKind.SERVICE_PROVIDER,
        entry_file=Path(__file__).resolve(),
        description=description,
        identifier=f'host.builtin.{name}',
        version=version,
    )
