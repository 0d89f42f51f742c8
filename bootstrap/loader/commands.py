from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import TYPE_CHECKING, List

from core.lifecycle import CommandArgument, ComponentDescriptor
from runtime.utils import load_manifest_file, write_manifest_file

if TYPE_CHECKING:
    from bootstrap.context.host_context import HostContext

logger = logging.getLogger(__name__)

SETTINGS_KEY = 'Module Settings'
PREVIOUS_INIT_KEY = 'hasPreviousInit'


class CommandRegistrar:
    """
    One-time registration of a feature unit's chat commands.

    After a clean pass the unit's manifest gets ``hasPreviousInit = true`` so
    the next boot skips it. Units in debug mode never get the flag.
    """

    def should_register(self, descriptor: ComponentDescriptor, context: 'HostContext') -> bool:
        return (
            context.flags.chat_client_loaded
            and (descriptor.wants_chat_client or descriptor.needs_chat_client)
            and descriptor.can_init_commands
            and not descriptor.previously_registered_commands
            and bool(descriptor.command_specs)
        )

    def already_registered(self, descriptor: ComponentDescriptor, context: 'HostContext') -> bool:
        return (
            context.flags.chat_client_loaded
            and (descriptor.wants_chat_client or descriptor.needs_chat_client)
            and descriptor.can_init_commands
            and descriptor.previously_registered_commands
        )

    async def register(self, descriptor: ComponentDescriptor, context: 'HostContext') -> int:
        """Register every command of *descriptor*; return how many calls succeeded."""
        if self.already_registered(descriptor, context):
            logger.info("'%s' has already registered its commands. Skipping.", descriptor.name)
            return 0
        if not self.should_register(descriptor, context):
            return 0

        client = context.chat_client
        if client is None:
            logger.error("Chat client flag is up but no client is attached; cannot register commands for '%s'",
                         descriptor.name)
            return 0

        logger.info("'%s' requires initial command registration (%d commands)",
                    descriptor.name, len(descriptor.command_specs))
        registered = 0
        for spec in descriptor.command_specs.values():
            name = spec.name.lower()
            try:
                if not spec.has_arguments:
                    await client.register_basic_command(name, spec.description, descriptor.debug_mode)
                else:
                    await client.register_argument_command(
                        name, spec.description, self._lowered(spec.arguments), descriptor.debug_mode)
                registered += 1
            except Exception as exc:
                logger.error("Registering command '%s' for '%s' failed: %s", name, descriptor.name, exc)

        if registered < len(descriptor.command_specs):
            logger.warning("'%s' registered %d/%d commands; leaving %s unset for a retry next boot",
                           descriptor.name, registered, len(descriptor.command_specs), PREVIOUS_INIT_KEY)
        elif descriptor.debug_mode:
            logger.info("'%s' is in debug mode; %s not written", descriptor.name, PREVIOUS_INIT_KEY)
        else:
            await self._mark_registered(descriptor)
        return registered

    @staticmethod
    def _lowered(arguments: List[CommandArgument]) -> List[CommandArgument]:
        return [dataclasses.replace(arg, name=arg.name.lower()) for arg in arguments]

    async def _mark_registered(self, descriptor: ComponentDescriptor) -> None:
        if descriptor.manifest_path is None:
            return
        try:
            await asyncio.to_thread(self._write_flag, descriptor)
        except (OSError, ValueError) as exc:
            logger.error("Could not update %s in %s: %s", PREVIOUS_INIT_KEY, descriptor.manifest_path, exc)
            return
        descriptor.previously_registered_commands = True
        logger.info("Updated %s flag in %s", PREVIOUS_INIT_KEY, descriptor.manifest_path.name)

    @staticmethod
    def _write_flag(descriptor: ComponentDescriptor) -> None:
        data = load_manifest_file(descriptor.manifest_path)
        settings = data.get(SETTINGS_KEY)
        if not isinstance(settings, dict):
            raise ValueError(f"manifest has no '{SETTINGS_KEY}' map")
        settings[PREVIOUS_INIT_KEY] = True
        write_manifest_file(descriptor.manifest_path, data)
