"""
Host collaborator interfaces.

The host chat application, its template-macro registry, its regex script
tiers and the language model are consumed through these protocols.
"""

from typing import Callable, Dict, List, Optional, Protocol, runtime_checkable

from schemas import ChatMessage, ModelMessage, ModelResponse, RegexScript

MacroHandler = Callable[[str], str]


@runtime_checkable
class ChatHost(Protocol):
    """Read access to the host's current conversation."""

    @property
    def chat_id(self) -> Optional[str]:
        ...

    def get_messages(self) -> List[ChatMessage]:
        ...


@runtime_checkable
class ModelClient(Protocol):
    """
    Language model collaborator.

    Cancellation arrives as asyncio.CancelledError raised out of generate().
    """

    async def generate(self, messages: List[ModelMessage]) -> ModelResponse:
        ...


@runtime_checkable
class MacroRegistry(Protocol):
    """
    Host template-macro registry.

    Handlers receive the raw argument after "@" (or "") and must return a
    string synchronously.
    """

    def register_macro(self, name: str, handler: MacroHandler) -> None:
        ...

    def unregister_macro(self, name: str) -> None:
        ...


@runtime_checkable
class RegexScriptSource(Protocol):
    """Host regex tiers, keyed "global", "preset" and "scoped"."""

    def load_scripts(self) -> Dict[str, List[RegexScript]]:
        ...
