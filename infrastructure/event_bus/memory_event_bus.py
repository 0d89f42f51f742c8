# infrastructure/event_bus/memory_event_bus.py
from __future__ import annotations

import inspect
import logging
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional

from domain.ports.event_bus_port import EventBusPort
from signals.base import ReadinessSignal

logger = logging.getLogger(__name__)

Handler = Callable[[ReadinessSignal], Any]


@dataclass(slots=True)
class _RecordedEvent:
    ts: float
    signal_name: str
    payload: Any


@dataclass(slots=True)
class _Subscription:
    handler: Handler
    one_shot: bool


class MemoryEventBus(EventBusPort):
    """
    Process-wide publish/subscribe channel for readiness and steady-state signals.

    Delivery is synchronous with respect to ``emit``: handlers run in
    subscription order and coroutine handlers are awaited before ``emit``
    returns. Nothing is replayed to late subscribers.
    """

    def __init__(self, component_id: str = "event_bus_memory", max_history: int = 1000) -> None:
        self.component_id = component_id
        self._subs: Dict[str, List[_Subscription]] = defaultdict(list)
        self._max_history = max_history
        self._history: Deque[_RecordedEvent] = deque(maxlen=max_history)
        self._emit_count = 0
        self._handler_errors = 0
        logger.info("[%s] constructed (max_history=%s)", self.component_id, self._max_history)

    def on(self, signal_name: str, handler: Handler) -> None:
        self._subscribe(signal_name, handler, one_shot=False)

    subscribe = on

    def once(self, signal_name: str, handler: Handler) -> None:
        self._subscribe(signal_name, handler, one_shot=True)

    def _subscribe(self, signal_name: str, handler: Handler, one_shot: bool) -> None:
        self._subs[signal_name].append(_Subscription(handler, one_shot))
        logger.debug(
            '[%s] SUBSCRIBED (%s) to signal "%s". Total subscribers for this signal: %d.',
            self.component_id,
            "once" if one_shot else "on",
            signal_name,
            len(self._subs[signal_name]),
        )

    def unsubscribe(self, signal_name: str, handler: Handler) -> None:
        subs = self._subs.get(signal_name, [])
        for sub in subs:
            if sub.handler is handler:
                subs.remove(sub)
                logger.debug("[%s] unsubscribed %s -> %s", self.component_id, signal_name, handler)
                return

    async def emit(self, signal_name: str, payload: Optional[Any] = None) -> None:
        self._emit_count += 1
        signal = ReadinessSignal(signal_name=signal_name, payload=payload, sequence=self._emit_count)
        self._record(signal_name, signal.payload)

        # Snapshot first: handlers subscribed while this emit is being delivered
        # belong to the next emission.
        subscriptions = tuple(self._subs.get(signal_name, ()))
        if not subscriptions:
            logger.debug("[%s] No subscribers for '%s', emit is a no-op.", self.component_id, signal_name)
            return

        remaining = [sub for sub in self._subs[signal_name] if not sub.one_shot]
        if remaining:
            self._subs[signal_name] = remaining
        else:
            del self._subs[signal_name]

        logger.info('[%s] EMITTING signal "%s" to %d subscriber(s).',
                    self.component_id, signal_name, len(subscriptions))
        await self._dispatch(signal, subscriptions)

    async def _dispatch(self, signal: ReadinessSignal, subscriptions) -> None:
        for i, sub in enumerate(subscriptions):
            handler = sub.handler
            try:
                logger.debug("[%s] Dispatching '%s' to handler #%d (%s)", self.component_id, signal.signal_name,
                             i + 1, getattr(handler, '__qualname__', str(handler)))
                result = handler(signal)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                self._handler_errors += 1
                logger.exception("[%s] Error in handler for signal %s: %s", self.component_id, signal.signal_name, exc)

    def _record(self, signal_name: str, payload: Any) -> None:
        self._history.append(_RecordedEvent(time.time(), signal_name, payload))

    def history(self) -> List[_RecordedEvent]:
        return list(self._history)

    def subscriber_count(self, signal_name: str) -> int:
        return len(self._subs.get(signal_name, ()))

    def get_stats(self) -> Dict[str, Any]:
        return {
            'subscribers': {k: len(v) for k, v in self._subs.items()},
            'history_size': len(self._history),
            'emit_count': self._emit_count,
            'handler_errors': self._handler_errors,
        }
