"""
Manifest Processor
──────────────────
* Shape detection: ``Framework Name`` → ServiceProvider, ``Module Name`` → FeatureUnit
* Field validation through pydantic models keyed by the manifest's own labels
* Conversion into a normalized ``ComponentDescriptor``
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from bootstrap.exceptions import ManifestParseError
from core.lifecycle import (
    ArgumentType, Capability, CommandArgument, CommandSpec, ComponentDescriptor,
    ComponentKind, SubComponentRef,
)
from core.results import LoadFailureReason
from runtime.utils import load_manifest_file

logger = logging.getLogger(__name__)

SERVICE_PROVIDER_MARKER = 'Framework Name'
FEATURE_UNIT_MARKER = 'Module Name'
MAIN_KEY = 'Main'
NO_ARGUMENTS = 'none'


class _ManifestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='allow', str_strip_whitespace=True)

    @field_validator('name', check_fields=False)
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        if not v:
            raise ValueError('name must not be empty')
        return v

    @field_validator('structure', check_fields=False)
    @classmethod
    def _structure_has_main(cls, v: Dict[str, str]) -> Dict[str, str]:
        if not v.get(MAIN_KEY):
            raise ValueError("structure must declare a 'Main' entry file")
        return v


class ServiceProviderManifest(_ManifestModel):
    name: str = Field(alias='Framework Name')
    description: str = Field(default='', alias='Framework Description')
    identifier: str = Field(default='', alias='Framework Identifier')
    version: str = Field(default='', alias='Framework Version')
    structure: Dict[str, str] = Field(alias='Framework Structure')
    entry_point: str = Field(default='', alias='Framework Entry')


class FeatureUnitManifest(_ManifestModel):
    name: str = Field(alias='Module Name')
    description: str = Field(default='', alias='Module Description')
    identifier: str = Field(default='', alias='Module Identifier')
    version: str = Field(default='', alias='Module Version')
    structure: Dict[str, str] = Field(alias='Module Structure')
    settings: Dict[str, Any] = Field(default_factory=dict, alias='Module Settings')
    abilities: Dict[str, Any] = Field(default_factory=dict, alias='Module Abilities')
    commands: Dict[str, str] = Field(default_factory=dict, alias='Module Commands')
    command_arguments: Dict[str, str] = Field(default_factory=dict, alias='Module Command Arguments')
    arg_types: Dict[str, Any] = Field(default_factory=dict, alias='Module Command Arg Type')
    arg_descriptions: Dict[str, str] = Field(default_factory=dict, alias='Module Command Arg Descriptions')
    arg_requirements: Dict[str, bool] = Field(default_factory=dict, alias='Module Command Arg Requirement')


# Fields whose absence (or emptiness) is MISSING_REQUIRED_FIELD rather than INVALID_MANIFEST.
_REQUIRED_FIELDS = {'name', 'structure', 'Framework Name', 'Module Name', 'Framework Structure', 'Module Structure'}


class ManifestProcessor:
    """Validate & parse component manifests."""

    def detect_kind(self, data: Mapping[str, Any]) -> Optional[ComponentKind]:
        if not isinstance(data, Mapping):
            return None
        if SERVICE_PROVIDER_MARKER in data:
            return ComponentKind.SERVICE_PROVIDER
        if FEATURE_UNIT_MARKER in data:
            return ComponentKind.FEATURE_UNIT
        return None

    def parse_file(self, manifest_path: Union[str, Path]) -> ComponentDescriptor:
        path = Path(manifest_path)
        try:
            data = load_manifest_file(path)
        except (OSError, ValueError) as exc:
            raise ManifestParseError(LoadFailureReason.READ_FAILED, f'Could not read manifest: {exc}',
                                     manifest_path=str(path)) from exc
        return self.parse(path, data)

    def parse(self, manifest_path: Union[str, Path], data: Mapping[str, Any]) -> ComponentDescriptor:
        path = Path(manifest_path)
        kind = self.detect_kind(data)
        if kind is None:
            raise ManifestParseError(
                LoadFailureReason.INVALID_MANIFEST,
                f"Manifest declares neither '{SERVICE_PROVIDER_MARKER}' nor '{FEATURE_UNIT_MARKER}'",
                manifest_path=str(path),
            )

        model_cls = ServiceProviderManifest if kind is ComponentKind.SERVICE_PROVIDER else FeatureUnitManifest
        try:
            model = model_cls.model_validate(dict(data))
        except ValidationError as exc:
            raise self._translate(exc, path) from exc

        root = path.parent
        sub_components = [
            SubComponentRef(label=label, manifest_path=root / rel)
            for label, rel in model.structure.items() if label != MAIN_KEY
        ]
        descriptor = ComponentDescriptor(
            name=model.name,
            kind=kind,
            entry_file=root / model.structure[MAIN_KEY],
            description=model.description,
            identifier=model.identifier,
            version=model.version,
            sub_components=sub_components,
            manifest_path=path,
        )

        if kind is ComponentKind.SERVICE_PROVIDER:
            descriptor.entry_point_name = model.entry_point
        else:
            self._apply_feature_unit_fields(descriptor, model)

        logger.debug("Parsed %s manifest '%s' from %s (%d sub-components)",
                     kind.value, descriptor.name, path, len(sub_components))
        return descriptor

    # ------------------------------------------------------------------ #
    def _apply_feature_unit_fields(self, descriptor: ComponentDescriptor, model: FeatureUnitManifest) -> None:
        settings = model.settings
        descriptor.settings = dict(settings)
        descriptor.entry_point_name = str(settings.get('moduleEntryPoint') or '')
        descriptor.previously_registered_commands = bool(settings.get('hasPreviousInit', False))
        descriptor.debug_mode = bool(settings.get('debugMode', False))

        capabilities = set()
        if settings.get('dependsChatClient'):
            capabilities.add(Capability.NEEDS_CHAT_CLIENT.value)
        if settings.get('canUseChatClient'):
            capabilities.add(Capability.WANTS_CHAT_CLIENT.value)
        if model.abilities.get('canInitSlashCommands'):
            capabilities.add(Capability.CAN_INIT_COMMANDS.value)
        descriptor.capabilities = frozenset(capabilities)

        descriptor.command_specs = {
            name: CommandSpec(name=name, description=str(description or ''),
                              arguments=self._command_arguments(name, model))
            for name, description in model.commands.items()
        }

    @staticmethod
    def _command_arguments(command: str, model: FeatureUnitManifest) -> List[CommandArgument]:
        raw = model.command_arguments.get(command)
        if not raw or raw.strip().lower() == NO_ARGUMENTS:
            return []
        arguments = []
        for arg_name in (a.strip() for a in raw.split(',')):
            if not arg_name:
                continue
            arguments.append(CommandArgument(
                name=arg_name,
                description=model.arg_descriptions.get(arg_name, 'No description provided.'),
                type=ArgumentType.coerce(model.arg_types.get(arg_name, ArgumentType.STRING)),
                required=bool(model.arg_requirements.get(arg_name, False)),
            ))
        return arguments

    @staticmethod
    def _translate(exc: ValidationError, path: Path) -> ManifestParseError:
        schema_errors = []
        missing = False
        for err in exc.errors():
            loc = '.'.join(str(p) for p in err.get('loc', ()))
            schema_errors.append(f"{loc}: {err.get('msg')}")
            head = err.get('loc', ('',))[0] if err.get('loc') else ''
            if err.get('type') == 'missing' or head in _REQUIRED_FIELDS and err.get('type') == 'value_error':
                missing = True
        reason = LoadFailureReason.MISSING_REQUIRED_FIELD if missing else LoadFailureReason.INVALID_MANIFEST
        logger.error("Manifest %s failed validation (%s)", path, reason.value)
        return ManifestParseError(reason, 'Manifest validation failed', manifest_path=str(path),
                                  schema_errors=schema_errors)
