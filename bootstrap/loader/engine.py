from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

from bootstrap.exceptions import ActivationError, ClassificationError, DependencyResolutionError, ManifestParseError
from bootstrap.loader.activation import EntryPointActivator
from bootstrap.loader.commands import CommandRegistrar
from bootstrap.processors.manifest_processor import ManifestProcessor
from core.lifecycle import Capability, ComponentDescriptor, ComponentKind, builtin_descriptor
from core.results import LoadFailureReason, LoadResult, LoadState
from runtime.utils import is_within
from signals.readiness import COMPONENT_ACTIVATED, COMPONENT_ROLLED_BACK, LOADER_READY

if TYPE_CHECKING:
    from bootstrap.context.host_context import HostContext

logger = logging.getLogger(__name__)

LOADER_NAME = 'loader'
LOADER_VERSION = '1.0.0'

_REGISTERED_STATES = frozenset({LoadState.DEPENDENCY_CHECKED, LoadState.REGISTERED, LoadState.ACTIVATING, LoadState.ACTIVATED})


class LoaderEngine:
    """
    Turns a manifest path into a registered and activated component.

    ``load_request`` never raises: every failure becomes a ``LoadResult``
    plus a log line. Sub-components are loaded depth-first after their parent
    has activated, each as an independent request.
    """

    def __init__(self, context: 'HostContext', processor: Optional[ManifestProcessor] = None,
                 activator: Optional[EntryPointActivator] = None,
                 command_registrar: Optional[CommandRegistrar] = None) -> None:
        self.context = context
        self.processor = processor or ManifestProcessor()
        self.activator = activator or EntryPointActivator(
            allow_dynamic_import=context.settings.loader.allow_dynamic_import)
        self.command_registrar = command_registrar or CommandRegistrar()
        self.requests_handled = 0

    async def initialize(self) -> None:
        self.context.registry.add(builtin_descriptor(LOADER_NAME, LOADER_VERSION, 'Component loader'))
        await self.context.versions.set(LOADER_NAME, ComponentKind.SERVICE_PROVIDER, LOADER_VERSION)
        self.context.flags.loader_loaded = True
        logger.info("Loader initialized and accepting requests")
        await self.context.bus.emit(LOADER_READY, {'component': LOADER_NAME})

    def classify(self, manifest_path: Union[str, Path]) -> Optional[ComponentKind]:
        paths = self.context.paths
        if is_within(manifest_path, paths.private_service_providers) or \
                is_within(manifest_path, paths.public_service_providers):
            return ComponentKind.SERVICE_PROVIDER
        if is_within(manifest_path, paths.feature_units):
            return ComponentKind.FEATURE_UNIT
        return None

    def _require_kind(self, path: Path) -> ComponentKind:
        kind = self.classify(path)
        if kind is None:
            raise ClassificationError('Manifest is outside every resource root', manifest_path=str(path))
        return kind

    async def load_request(self, manifest_path: Union[str, Path]) -> LoadResult:
        path = Path(manifest_path)
        request_name = path.parent.name
        self.requests_handled += 1

        try:
            kind = self._require_kind(path)
        except ClassificationError as exc:
            logger.error("Could not determine type for resource at: %s", path)
            return LoadResult.failure(path, LoadState.CLASSIFICATION_FAILED, LoadFailureReason.CLASSIFICATION_FAILED,
                                      str(exc))

        logger.info("Received a load request for %s: '%s'", kind.value, request_name)
        result = LoadResult(success=True, manifest_path=path, state=LoadState.CLASSIFIED, kind=kind)
        try:
            await self._handle(path, kind, result)
        except DependencyResolutionError as exc:
            logger.error("Fatal: %s. Skipping initialization.", exc)
            result.success = False
            result.state = LoadState.ROLLED_BACK
            result.reason = LoadFailureReason.HARD_DEPENDENCY_UNMET
            result.message = str(exc)
        except Exception as exc:
            # Last-resort guard, e.g. RecursionError from a manifest cycle.
            logger.exception("Unexpected error while loading %s", path)
            await self._unexpected(result, exc)

        if result.success:
            logger.info("Successfully fulfilled load request for '%s'", result.name or request_name)
        else:
            logger.warning("Failed to fulfill load request for '%s' (%s)", result.name or request_name,
                           result.reason.value if result.reason else 'unknown')
        return result

    async def _handle(self, path: Path, kind: ComponentKind, result: LoadResult) -> None:
        try:
            descriptor = await self._parse(path)
        except ManifestParseError as exc:
            logger.error("Error processing load request for %s: %s", path, exc)
            result.success = False
            result.state = LoadState.PARSE_FAILED
            result.reason = exc.reason
            result.message = str(exc)
            return
        result.name = descriptor.name

        if descriptor.kind is not kind:
            message = f"Manifest declares a {descriptor.kind.value} but lives under the {kind.value} root"
            logger.error("%s: %s", path, message)
            result.success = False
            result.state = LoadState.PARSE_FAILED
            result.reason = LoadFailureReason.INVALID_MANIFEST
            result.message = message
            return
        result.state = LoadState.PARSED

        if kind is ComponentKind.FEATURE_UNIT:
            self._check_dependencies(descriptor, result)
        result.state = LoadState.DEPENDENCY_CHECKED

        await self._register(descriptor)
        result.state = LoadState.REGISTERED

        if not await self._activate(descriptor, result):
            return

        for ref in descriptor.sub_components:
            logger.info("Found sub-component '%s' for '%s'. Sending new load request...", ref.label, descriptor.name)
            result.children.append(await self.load_request(ref.manifest_path))

        if kind is ComponentKind.FEATURE_UNIT:
            try:
                await self.command_registrar.register(descriptor, self.context)
            except Exception as exc:
                logger.error("Command registration for '%s' failed: %s", descriptor.name, exc)
                result.warnings.append(f'command registration failed: {exc}')

    async def _parse(self, path: Path) -> ComponentDescriptor:
        return await asyncio.to_thread(self.processor.parse_file, path)

    def _check_dependencies(self, descriptor: ComponentDescriptor, result: LoadResult) -> None:
        chat_up = self.context.flags.chat_client_loaded
        if descriptor.needs_chat_client and not chat_up:
            raise DependencyResolutionError(f"'{descriptor.name}' requires the chat client, which is not loaded",
                                            component_id=descriptor.name, capability=Capability.NEEDS_CHAT_CLIENT.value)
        if descriptor.wants_chat_client and not chat_up:
            warning = f"'{descriptor.name}' wants the chat client, but it is not loaded. Functionality may be limited."
            logger.warning(warning)
            result.warnings.append(warning)

    async def _register(self, descriptor: ComponentDescriptor) -> None:
        if self.context.flags.registry_loaded:
            self.context.registry.add(descriptor)
        if self.context.flags.version_loaded:
            await self.context.versions.set(descriptor.name, descriptor.kind, descriptor.version)

    async def _activate(self, descriptor: ComponentDescriptor, result: LoadResult) -> bool:
        """Run the entry point. Returns False when the component was rolled back."""
        result.state = LoadState.ACTIVATING
        is_provider = descriptor.kind is ComponentKind.SERVICE_PROVIDER

        if not descriptor.entry_point_name:
            logger.info("'%s' declares no entry point; registration stands without activation", descriptor.name)
            result.state = LoadState.ACTIVATED
            return True

        try:
            logger.info("Attempting to load and execute entry point for '%s'...", descriptor.name)
            target = self.activator.resolve_target(descriptor)

            if is_provider:
                if target is None:
                    return self._entry_point_missing(descriptor, result,
                                                     f"Could not find object '{descriptor.name}' in {descriptor.entry_file}")
                self.context.attach_service_provider(descriptor.name, target)
                if not self.activator.has_entry_point(descriptor, target):
                    return self._entry_point_missing(
                        descriptor, result,
                        f"Main function '{descriptor.entry_point_name}' not found in '{descriptor.name}'")
            else:
                if target is None:
                    raise ActivationError(f"Could not find object '{descriptor.name}' in {descriptor.entry_file}",
                                          component_id=descriptor.name)
                self.context.attach_feature_unit(descriptor.name, target)

            await self.activator.invoke(descriptor, target, self.context)
        except Exception as exc:
            await self._rollback(descriptor.name, descriptor.kind, result, exc)
            return False

        logger.info("Successfully executed entry point '%s' for '%s'", descriptor.entry_point_name, descriptor.name)
        result.state = LoadState.ACTIVATED
        await self.context.bus.emit(COMPONENT_ACTIVATED, {'component': descriptor.name, 'kind': descriptor.kind.value})
        return True

    def _entry_point_missing(self, descriptor: ComponentDescriptor, result: LoadResult, message: str) -> bool:
        logger.error("%s; registration stands", message)
        result.state = LoadState.ACTIVATED
        result.reason = LoadFailureReason.ENTRY_POINT_MISSING
        result.warnings.append(message)
        return True

    async def _rollback(self, name: str, kind: ComponentKind, result: LoadResult, exc: BaseException,
                        reason: LoadFailureReason = LoadFailureReason.ACTIVATION_THREW) -> None:
        logger.error("An error occurred while initializing '%s': %s", name, exc)
        if self.context.flags.registry_loaded:
            self.context.registry.remove(name)
        if self.context.flags.version_loaded:
            await self.context.versions.remove(name)
        if kind is ComponentKind.SERVICE_PROVIDER:
            self.context.detach_service_provider(name)
        else:
            self.context.detach_feature_unit(name)

        result.success = False
        result.state = LoadState.ROLLED_BACK
        result.reason = reason
        result.message = str(exc)
        await self.context.bus.emit(COMPONENT_ROLLED_BACK, {'component': name, 'error': str(exc)})

    async def _unexpected(self, result: LoadResult, exc: BaseException) -> None:
        """Close out a request that escaped the handlers; undo its registration if it got that far."""
        message = f'Unexpected {type(exc).__name__}: {exc}'
        if result.state in _REGISTERED_STATES and result.name:
            await self._rollback(result.name, result.kind, result, exc, LoadFailureReason.UNEXPECTED_ERROR)
        else:
            result.success = False
            result.state = LoadState.PARSE_FAILED
            result.reason = LoadFailureReason.UNEXPECTED_ERROR
        result.message = message

    def unload_request(self, name: str) -> None:
        logger.info("Received an unload request for: %s", name)

    def request_service_provider(self, name: str) -> Optional[ComponentDescriptor]:
        return self._lookup(name, 'service provider')

    def request_feature_unit(self, name: str) -> Optional[ComponentDescriptor]:
        return self._lookup(name, 'feature unit')

    def _lookup(self, name: str, label: str) -> Optional[ComponentDescriptor]:
        logger.info("Searching registry for %s: %s", label, name)
        entry = self.context.registry.find(name)
        if entry is not None:
            logger.info("Found %s '%s' in registry", label, name)
        else:
            logger.info("%s '%s' not found in registry", label.capitalize(), name)
        return entry

    def get_stats(self) -> dict[str, Any]:
        return {
            'requests_handled': self.requests_handled,
            'service_providers': len(self.context.service_providers),
            'feature_units': len(self.context.feature_units),
        }
