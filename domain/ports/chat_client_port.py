# domain/ports/chat_client_port.py

from typing import TYPE_CHECKING, List, Protocol, runtime_checkable

from core.lifecycle import CommandArgument

if TYPE_CHECKING:
    from bootstrap.context.host_context import HostContext


@runtime_checkable
class ChatClientPort(Protocol):
    """
    Connection to the chat platform that feature units register commands with.

    ``connect`` must emit ``CHAT_CLIENT_READY`` on the context's bus once the
    client can accept command registrations; the host waits for that signal.
    """

    async def connect(self, context: 'HostContext') -> None:
        ...

    async def register_basic_command(self, name: str, description: str, debug_mode: bool = False) -> None:
        ...

    async def register_argument_command(self, name: str, description: str,
                                        arguments: List[CommandArgument], debug_mode: bool = False) -> None:
        ...
