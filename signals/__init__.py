# signals/__init__.py
from __future__ import annotations

from .base import ReadinessSignal
from .readiness import (
    CHAT_CLIENT_READY, COMMAND_EXECUTED, COMPONENT_ACTIVATED, COMPONENT_ROLLED_BACK,
    LOADER_READY, PERSISTENCE_READY, READINESS_SIGNALS, REGISTRY_READY,
    STEADY_STATE_SIGNALS, VERSION_TABLE_READY, is_readiness_signal,
)

__all__ = [
    'ReadinessSignal',
    'REGISTRY_READY', 'VERSION_TABLE_READY', 'LOADER_READY', 'PERSISTENCE_READY', 'CHAT_CLIENT_READY',
    'COMPONENT_ACTIVATED', 'COMPONENT_ROLLED_BACK', 'COMMAND_EXECUTED',
    'READINESS_SIGNALS', 'STEADY_STATE_SIGNALS', 'is_readiness_signal',
]
