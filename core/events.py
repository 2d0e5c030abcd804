"""
In-process publish/subscribe bus.

Carries both the host chat events the trigger engine consumes and the events
this system emits (variable lifecycle, queue task completion). Handlers are
keyed by event class and receive the event instance. A failing handler is
logged and skipped; it never affects other handlers or the publisher.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Type, TypeVar

from core.logging_config import get_logger

logger = get_logger(__name__)

E = TypeVar("E")


# ==================== Host events ====================


@dataclass(frozen=True)
class MessageSent:
    """The user sent a message; index points into the host chat history."""

    message_index: int


@dataclass(frozen=True)
class MessageReceived:
    """The assistant produced a message; index points into the host chat history."""

    message_index: int


@dataclass(frozen=True)
class ConversationChanged:
    """The host switched to another conversation."""

    chat_id: Optional[str] = None


# ==================== System events ====================


@dataclass(frozen=True)
class VariableCreated:
    variable_id: str
    name: str


@dataclass(frozen=True)
class VariableRenamed:
    variable_id: str
    old_name: str
    new_name: str


@dataclass(frozen=True)
class VariableDeleted:
    variable_id: str
    name: str


@dataclass(frozen=True)
class QueueTaskFinished:
    """Published by the send queue when a task leaves the processing state."""

    task_id: str
    suite_id: str
    suite_name: str
    status: str  # "success" | "failed" | "aborted"
    results_count: int = 0
    assigned_count: int = 0
    raw_response: Optional[str] = None
    error: Optional[str] = None


class Subscription:
    """Handle returned by EventBus.subscribe; call unsubscribe() to detach."""

    def __init__(self, bus: "EventBus", event_type: type, handler: Callable[[Any], Any]):
        self._bus = bus
        self.event_type = event_type
        self.handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._bus._remove(self.event_type, self.handler)
            self.active = False


@dataclass
class EventBus:
    """Synchronous event bus with per-handler error isolation."""

    _handlers: Dict[type, List[Callable[[Any], Any]]] = field(default_factory=dict)
    _pending: Set["asyncio.Task[Any]"] = field(default_factory=set)

    def subscribe(self, event_type: Type[E], handler: Callable[[E], Any]) -> Subscription:
        """Register a handler for one event class."""
        self._handlers.setdefault(event_type, []).append(handler)
        return Subscription(self, event_type, handler)

    def publish(self, event: Any) -> None:
        """
        Deliver an event to every handler registered for its class.

        Coroutine handlers are scheduled on the running loop; without a running
        loop they are closed and skipped with a warning.
        """
        for handler in list(self._handlers.get(type(event), [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    self._schedule(result, event)
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    event=type(event).__name__,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                )

    def pending_count(self) -> int:
        """Async handler tasks scheduled and not yet finished."""
        return len(self._pending)

    def handler_count(self, event_type: type) -> int:
        return len(self._handlers.get(event_type, []))

    def _remove(self, event_type: type, handler: Callable[[Any], Any]) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def _schedule(self, awaitable: Any, event: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running loop for async handler", event=type(event).__name__)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(lambda t: self._report(t, event))

    @staticmethod
    def _report(task: "asyncio.Task[Any]", event: Any) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Async event handler failed", event=type(event).__name__, error=str(error))
