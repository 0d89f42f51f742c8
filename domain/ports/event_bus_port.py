# domain/ports/event_bus_port.py

"""Readiness bus interface shared by the host and its components."""

from typing import Any, Callable, Optional, Protocol, runtime_checkable


@runtime_checkable
class EventBusPort(Protocol):
    """Interface for emitting and subscribing to named signals."""

    async def emit(self, signal_name: str, payload: Optional[Any] = None) -> None:
        """
        Deliver a signal to every handler subscribed before this call.

        Args:
            signal_name: Name of the signal
            payload: Optional signal data
        """
        ...

    def once(self, signal_name: str, handler: Callable[[Any], Any]) -> None:
        """
        Subscribe for the next emission only. Earlier emissions are not replayed.

        Args:
            signal_name: Name of the signal
            handler: Callable invoked with the emitted signal
        """
        ...

    def on(self, signal_name: str, handler: Callable[[Any], Any]) -> None:
        """
        Subscribe for every future emission.

        Args:
            signal_name: Name of the signal
            handler: Callable invoked with each emitted signal
        """
        ...
