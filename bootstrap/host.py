from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from bootstrap.config.host_config import HostConfig, HostSettings
from bootstrap.context.host_context import HostContext, HostPaths
from bootstrap.loader.activation import ComponentFactoryTable, EntryPointActivator
from bootstrap.loader.engine import LoaderEngine
from bootstrap.sequencer import BootReport, BootSequencer
from configs.config_loader import ConfigLoader
from domain.ports.chat_client_port import ChatClientPort
from domain.ports.event_bus_port import EventBusPort
from domain.ports.persistence_port import PersistencePort
from infrastructure.event_bus.memory_event_bus import MemoryEventBus
from runtime.utils import normalize_path

logger = logging.getLogger(__name__)


def create_persistence(settings: HostSettings, root: Path) -> Optional[PersistencePort]:
    cfg = settings.persistence
    if not cfg.enabled:
        return None
    from infrastructure.persistence.table_store import TableStore

    return TableStore({'provider': cfg.provider, 'db_path': str(normalize_path(cfg.db_path, root))})


def build_context(settings: HostSettings, root: Union[str, Path], *, bus: Optional[EventBusPort] = None,
                  persistence: Optional[PersistencePort] = None,
                  chat_client: Optional[ChatClientPort] = None) -> HostContext:
    root = Path(root).resolve()
    paths = HostPaths.under(root, settings.paths.private_frameworks, settings.paths.public_frameworks,
                            settings.paths.modules)
    if persistence is None:
        persistence = create_persistence(settings, root)
    return HostContext(
        settings=settings,
        paths=paths,
        bus=bus or MemoryEventBus(),
        persistence=persistence,
        chat_client=chat_client,
    )


def build_loader(context: HostContext, factories: Optional[Mapping[str, Any]] = None) -> LoaderEngine:
    table = ComponentFactoryTable.from_import_paths(context.settings.loader.factories)
    for name, factory in (factories or {}).items():
        table.register(name, factory)
    activator = EntryPointActivator(table, allow_dynamic_import=context.settings.loader.allow_dynamic_import)
    return LoaderEngine(context, activator=activator)


async def load_settings(config: HostConfig) -> HostSettings:
    loader = ConfigLoader(config.root)
    raw: Dict[str, Any] = await loader.load_global_config(config.env, provided_config=config.global_app_config)
    if config.debug:
        raw['debug_mode'] = True
    return HostSettings.from_mapping(raw)


async def boot_with_settings(settings: HostSettings, root: Union[str, Path], *,
                             chat_client: Optional[ChatClientPort] = None,
                             factories: Optional[Mapping[str, Any]] = None) -> Tuple[HostContext, BootReport]:
    """Boot from settings that are already loaded and validated."""
    context = build_context(settings, root, chat_client=chat_client)
    sequencer = BootSequencer(context, build_loader(context, factories))
    report = await sequencer.run()
    logger.info(sequencer.health_reporter.generate_summary())
    return context, report


async def boot_host(config_root: Union[str, Path], env: Optional[str] = None, *,
                    global_app_config: Optional[Dict[str, Any]] = None, debug: bool = False,
                    chat_client: Optional[ChatClientPort] = None,
                    factories: Optional[Mapping[str, Any]] = None) -> Tuple[HostContext, BootReport]:
    """
    Load configuration under *config_root*, start the core services and load
    every component found under the resource roots.

    Raises ConfigurationError when the configuration is invalid.
    """
    config = HostConfig.from_params(config_root, env=env, global_app_config=global_app_config, debug=debug)
    settings = await load_settings(config)
    return await boot_with_settings(settings, config.root, chat_client=chat_client, factories=factories)


def boot_host_sync(config_root: Union[str, Path], env: Optional[str] = None, **kwargs) -> Tuple[HostContext, BootReport]:
    return asyncio.run(boot_host(config_root, env, **kwargs))
