"""
Host macro bridge.

Makes every variable usable as {{Name}} / {{Name@range}} anywhere the host
expands template macros, plus the chat floor macro. Host handlers are
synchronous, so they only ever read values from the store's memory cache;
preload() is what fills that cache for the current chat.
"""

import re
from typing import Dict, List, Optional

from config.settings import settings
from core import get_logger
from core.events import EventBus, Subscription, VariableCreated, VariableDeleted, VariableRenamed
from core.interfaces import ChatHost, MacroHandler, MacroRegistry
from memory.variable_store import VariableStore
from utils.macro_processor import MacroContext, MacroProcessor

logger = get_logger(__name__)

_MACRO = re.compile(r"\{\{\s*([^{}@]+?)\s*(?:@([^{}]*))?\}\}")


class InMemoryMacroRegistry:
    """Minimal MacroRegistry for hosts that do not bring their own."""

    def __init__(self):
        self._handlers: Dict[str, MacroHandler] = {}

    def register_macro(self, name: str, handler: MacroHandler) -> None:
        self._handlers[name] = handler

    def unregister_macro(self, name: str) -> None:
        self._handlers.pop(name, None)

    def names(self) -> List[str]:
        return sorted(self._handlers)

    def substitute(self, text: str) -> str:
        """Replace registered macros in text. Unknown macros are left as written."""

        def _sub(match: "re.Match[str]") -> str:
            handler = self._handlers.get(match.group(1))
            if handler is None:
                return match.group(0)
            return handler(match.group(2) or "")

        return _MACRO.sub(_sub, text)


class GlobalMacroBridge:
    """Keeps the host macro registry in sync with the variable definitions."""

    def __init__(
        self,
        store: VariableStore,
        host: ChatHost,
        registry: MacroRegistry,
        bus: Optional[EventBus] = None,
    ):
        self.store = store
        self.host = host
        self.registry = registry
        self.processor = MacroProcessor(store, cached_only=True)
        self._registered: List[str] = []
        self._subscriptions: List[Subscription] = []

        if bus is not None:
            self._subscriptions = [
                bus.subscribe(VariableCreated, lambda e: self.register_variable(e.name)),
                bus.subscribe(VariableRenamed, self._on_renamed),
                bus.subscribe(VariableDeleted, lambda e: self.unregister_variable(e.name)),
            ]

    def _context(self) -> MacroContext:
        return MacroContext(chat_id=self.host.chat_id, messages=self.host.get_messages())

    def _handler(self, name: str) -> MacroHandler:
        def handler(argument: str = "") -> str:
            body = f"{name}@{argument}" if argument else name
            return self.processor.resolve(body, self._context())

        return handler

    def _register(self, name: str) -> None:
        self.registry.register_macro(name, self._handler(name))
        if name not in self._registered:
            self._registered.append(name)

    def register_variable(self, name: str) -> None:
        self._register(name)
        logger.debug("Variable macro registered", name=name)

    def unregister_variable(self, name: str) -> None:
        self.registry.unregister_macro(name)
        if name in self._registered:
            self._registered.remove(name)
        logger.debug("Variable macro unregistered", name=name)

    def _on_renamed(self, event: VariableRenamed) -> None:
        self.unregister_variable(event.old_name)
        self.register_variable(event.new_name)

    def register_all(self) -> int:
        """Register the floor macro and one macro per variable. Returns the count registered."""
        self._register(settings.CHAT_FLOOR_MACRO_NAME)
        definitions = self.store.get_definitions()
        for definition in definitions:
            self._register(definition.name)
        logger.info("Variable macros registered", count=len(definitions))
        return len(definitions) + 1

    def unregister_all(self) -> None:
        for name in list(self._registered):
            self.registry.unregister_macro(name)
        self._registered = []

    def refresh(self) -> int:
        self.unregister_all()
        return self.register_all()

    def preload(self) -> bool:
        """Load the current chat's values into the cache the handlers read from."""
        return self.store.preload(self.host.chat_id)

    def registered_names(self) -> List[str]:
        return list(self._registered)

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        self.unregister_all()
