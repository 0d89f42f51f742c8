from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from bootstrap.health.reporter import ConsistencyIssue, HealthReporter
from bootstrap.loader.engine import LoaderEngine
from core.lifecycle import ComponentKind, builtin_descriptor
from core.results import LoadResult
from signals.readiness import CHAT_CLIENT_READY, PERSISTENCE_READY, REGISTRY_READY, VERSION_TABLE_READY

if TYPE_CHECKING:
    from bootstrap.context.host_context import HostContext

logger = logging.getLogger(__name__)

PERSISTENCE_NAME = 'persistence'
PERSISTENCE_VERSION = '1.0.0'


@dataclass
class BootReport:
    run_id: str
    results: List[LoadResult] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)
    issues: List[ConsistencyIssue] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def requests_issued(self) -> int:
        return sum(self.counts.values())

    @property
    def failures(self) -> List[LoadResult]:
        return [r for top in self.results for r in top.walk() if not r.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'run_id': self.run_id,
            'counts': dict(self.counts),
            'results': [r.to_dict() for r in self.results],
            'issues': [i.describe() for i in self.issues],
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
        }


class BootSequencer:
    """
    Brings the built-in service providers up in a fixed order, then issues
    one Load Request per top-level directory under each resource root.
    """

    def __init__(self, context: 'HostContext', loader: Optional[LoaderEngine] = None,
                 health_reporter: Optional[HealthReporter] = None) -> None:
        self.context = context
        self.loader = loader or LoaderEngine(context)
        self.health_reporter = health_reporter or HealthReporter(context)

    def resource_roots(self) -> List[Tuple[str, Path]]:
        paths = self.context.paths
        return [
            ('private_frameworks', paths.private_service_providers),
            ('public_frameworks', paths.public_service_providers),
            ('modules', paths.feature_units),
        ]

    async def start_core_services(self) -> None:
        ctx = self.context
        logger.info('=== Manifold host starting (run %s) ===', ctx.run_id)

        if ctx.persistence is not None:
            await self._start_persistence()

        await ctx.versions.init(ctx)
        await ctx.registry.initialize(ctx)
        await self.loader.initialize()

        if ctx.settings.chat_client.enabled:
            await self._start_chat_client()
        logger.info('Core services up: %s', ctx.flags.as_dict())

    async def _start_persistence(self) -> None:
        ctx = self.context

        async def _record_version(_signal: Any) -> None:
            await ctx.versions.set(PERSISTENCE_NAME, ComponentKind.SERVICE_PROVIDER, PERSISTENCE_VERSION)

        def _add_descriptor(_signal: Any) -> None:
            ctx.registry.add(builtin_descriptor(PERSISTENCE_NAME, PERSISTENCE_VERSION, 'Table persistence'))

        # Ordering: both subscriptions must exist before the version table and
        # registry initialize, which is why persistence starts first.
        ctx.bus.once(VERSION_TABLE_READY, _record_version)
        ctx.bus.once(REGISTRY_READY, _add_descriptor)
        ctx.flags.persistence_loaded = True
        logger.info('Persistence backend attached (%s)', type(ctx.persistence).__name__)
        await ctx.bus.emit(PERSISTENCE_READY, {'component': PERSISTENCE_NAME})

    async def _start_chat_client(self) -> None:
        ctx = self.context
        if ctx.chat_client is None:
            logger.error('Chat client is enabled but no client was supplied; continuing without it')
            return

        ready = asyncio.get_running_loop().create_future()

        def _on_ready(_signal: Any) -> None:
            ctx.flags.chat_client_loaded = True
            if not ready.done():
                ready.set_result(True)

        # Ordering: subscribe before connect(), which may emit synchronously.
        ctx.bus.once(CHAT_CLIENT_READY, _on_ready)
        logger.info('Connecting chat client; waiting for %s', CHAT_CLIENT_READY)
        await ctx.chat_client.connect(ctx)
        await ready
        logger.info('Chat client ready')

    def find_manifest(self, directory: Path) -> Optional[Path]:
        for name in self.context.settings.loader.manifest_names:
            candidate = directory / name
            if candidate.is_file():
                return candidate
        return None

    async def scan(self) -> Tuple[List[LoadResult], Dict[str, int]]:
        results: List[LoadResult] = []
        counts: Dict[str, int] = {}
        for key, root in self.resource_roots():
            counts[key] = 0
            if not root.is_dir():
                logger.info('No %s directory at %s; nothing to load', key, root)
                continue

            ignored = set(self.context.settings.loader.ignored(key))
            for entry in sorted(root.iterdir(), key=lambda p: p.name):
                if entry.name in ignored or not entry.is_dir():
                    continue
                manifest = self.find_manifest(entry)
                if manifest is None:
                    logger.warning('No manifest file in %s', entry)
                    manifest = entry / self.context.settings.loader.manifest_names[0]
                counts[key] += 1
                results.append(await self.loader.load_request(manifest))

            logger.info('Issued %d load request(s) from %s', counts[key], key)
        return results, counts

    async def run(self) -> BootReport:
        report = BootReport(run_id=self.context.run_id)
        await self.start_core_services()

        results, counts = await self.scan()
        report.results = results
        report.counts = counts
        self.health_reporter.record_results(results)
        self.health_reporter.mark_boot_complete()

        settings = self.context.settings
        if settings.debug_mode and settings.dump_debug_block:
            report.issues = await self.health_reporter.dump()

        report.finished_at = datetime.now(timezone.utc)
        logger.info('=== Boot complete: %d request(s), %d failure(s) ===',
                    report.requests_issued, len(report.failures))
        return report
