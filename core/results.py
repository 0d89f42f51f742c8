import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.lifecycle import ComponentKind

logger = logging.getLogger(__name__)


class LoadState(str, Enum):
    RECEIVED = 'received'
    CLASSIFIED = 'classified'
    PARSED = 'parsed'
    DEPENDENCY_CHECKED = 'dependency_checked'
    REGISTERED = 'registered'
    ACTIVATING = 'activating'
    ACTIVATED = 'activated'
    ROLLED_BACK = 'rolled_back'
    CLASSIFICATION_FAILED = 'classification_failed'
    PARSE_FAILED = 'parse_failed'

    @property
    def is_terminal(self) -> bool:
        return self in {LoadState.ACTIVATED, LoadState.ROLLED_BACK,
                        LoadState.CLASSIFICATION_FAILED, LoadState.PARSE_FAILED}


class LoadFailureReason(str, Enum):
    INVALID_MANIFEST = 'InvalidManifest'
    MISSING_REQUIRED_FIELD = 'MissingRequiredField'
    READ_FAILED = 'ReadFailed'
    CLASSIFICATION_FAILED = 'ClassificationFailed'
    HARD_DEPENDENCY_UNMET = 'HardDependencyUnmet'
    ENTRY_POINT_MISSING = 'EntryPointMissing'
    ACTIVATION_THREW = 'ActivationThrew'
    PERSISTENCE_WRITE_FAILED = 'PersistenceWriteFailed'
    UNEXPECTED_ERROR = 'UnexpectedError'


@dataclass
class LoadResult:
    """Outcome of one Load Request.

    ``children`` holds the results of recursive sub-component requests. They are
    informational only: a failed child never flips the parent's ``success``.
    """
    success: bool
    manifest_path: Path
    state: LoadState
    name: Optional[str] = None
    kind: Optional[ComponentKind] = None
    reason: Optional[LoadFailureReason] = None
    message: str = ''
    warnings: List[str] = field(default_factory=list)
    children: List['LoadResult'] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def failure(cls, manifest_path: Path, state: LoadState, reason: LoadFailureReason, message: str,
                name: Optional[str] = None, kind: Optional[ComponentKind] = None) -> 'LoadResult':
        return cls(success=False, manifest_path=manifest_path, state=state, name=name, kind=kind,
                   reason=reason, message=message)

    def walk(self):
        """Yield this result and every descendant, depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'manifest_path': str(self.manifest_path),
            'name': self.name,
            'kind': self.kind.value if self.kind else None,
            'state': self.state.value,
            'reason': self.reason.value if self.reason else None,
            'message': self.message,
            'warnings': list(self.warnings),
            'children': [c.to_dict() for c in self.children],
        }
