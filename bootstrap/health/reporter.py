from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Set

from core.lifecycle import ComponentKind
from core.results import LoadResult

if TYPE_CHECKING:
    from bootstrap.context.host_context import HostContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsistencyIssue:
    """A component name present in some of the three catalogs but not all of them."""
    name: str
    in_registry: bool
    in_versions: bool
    in_persisted: Optional[bool]

    def describe(self) -> str:
        where = [label for label, present in (('registry', self.in_registry), ('versions', self.in_versions),
                                              ('persisted', self.in_persisted)) if present]
        missing = [label for label, present in (('registry', self.in_registry), ('versions', self.in_versions),
                                                ('persisted', self.in_persisted)) if present is False]
        return f"'{self.name}' in {', '.join(where) or 'nothing'}; missing from {', '.join(missing)}"


class HealthReporter:
    """Boot-time health tracking and the debug consistency dump."""

    def __init__(self, context: 'HostContext'):
        self.context = context
        self.results: List[LoadResult] = []
        self.boot_start_time: datetime = datetime.now(timezone.utc)
        self.boot_end_time: Optional[datetime] = None

    def record_results(self, results: Iterable[LoadResult]) -> None:
        for result in results:
            self.results.append(result)
            log_level = logging.DEBUG if result.success else logging.WARNING
            logger.log(log_level, f"Load of '{result.name or result.manifest_path}': {result.state.value}")

    def mark_boot_complete(self) -> None:
        self.boot_end_time = datetime.now(timezone.utc)

    def get_boot_duration(self) -> float:
        end = self.boot_end_time or datetime.now(timezone.utc)
        return (end - self.boot_start_time).total_seconds()

    def failure_count(self) -> int:
        return sum(1 for top in self.results for r in top.walk() if not r.success)

    def get_count_by_state(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for top in self.results:
            for r in top.walk():
                counts[r.state.value] = counts.get(r.state.value, 0) + 1
        return counts

    async def check_consistency(self) -> List[ConsistencyIssue]:
        """
        Compare names across the registry, the in-memory version table and the
        persisted version table. The host's own kernel record is ignored.
        """
        versions = self.context.versions
        kernel = {name for name, rec in versions.snapshot().items() if rec.kind is ComponentKind.KERNEL}

        registry_names: Set[str] = set(self.context.registry.names()) - kernel
        version_names: Set[str] = set(versions.names()) - kernel
        persisted_names: Optional[Set[str]] = None
        if versions.has_backend:
            persisted_names = {rec.name for rec in await versions.persisted()} - kernel

        universe = registry_names | version_names | (persisted_names or set())
        issues = []
        for name in sorted(universe):
            in_persisted = None if persisted_names is None else name in persisted_names
            if name in registry_names and name in version_names and in_persisted is not False:
                continue
            issues.append(ConsistencyIssue(name, name in registry_names, name in version_names, in_persisted))
        return issues

    async def dump(self) -> List[ConsistencyIssue]:
        logger.info("=== Debug dump (run %s) ===", self.context.run_id)
        logger.info("Registry (%d): %s", len(self.context.registry), self.context.registry.names())
        for name, rec in self.context.versions.snapshot().items():
            logger.info("  version %-24s %-16s %s", name, rec.kind.value, rec.version)
        if self.context.versions.has_backend:
            persisted = await self.context.versions.persisted()
            logger.info("Persisted version rows (%d): %s", len(persisted), [r.name for r in persisted])
        logger.info("Capability flags: %s", self.context.flags.as_dict())

        issues = await self.check_consistency()
        if issues:
            for issue in issues:
                logger.warning("Consistency: %s", issue.describe())
        else:
            logger.info("Sanity check passed: registry, version table and persisted rows agree")
        return issues

    def generate_summary(self) -> str:
        lines = ['\n--- Manifold Host Boot Report ---']
        lines.append(f'Run: {self.context.run_id}')
        lines.append(f'Top-level load requests: {len(self.results)}')
        lines.append(f'Registered components: {len(self.context.registry)}')
        lines.append(f'Failures (including sub-components): {self.failure_count()}')
        lines.append(f'Boot Duration: {self.get_boot_duration():.2f} seconds')
        if self.context.versions.persistence_failures:
            lines.append(f'Persistence write failures: {self.context.versions.persistence_failures}')

        state_counts = self.get_count_by_state()
        if state_counts:
            lines.append('\nLoad State Breakdown:')
            for state, count in sorted(state_counts.items()):
                lines.append(f'  - {state}: {count}')

        failed = [r for top in self.results for r in top.walk() if not r.success or r.warnings]
        if failed:
            lines.append('\nRequests with Issues:')
            for r in failed:
                symbol = '⚠' if r.success else '✗'
                reason = r.reason.value if r.reason else 'warning'
                lines.append(f'  {symbol} {r.name or r.manifest_path} ({reason}) {r.message}'.rstrip())
                for warning in r.warnings:
                    lines.append(f'    Warning: {warning}')

        lines.append('--- End of Boot Report ---\n')
        return '\n'.join(lines)
