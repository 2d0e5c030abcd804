"""
Shared pytest fixtures for variable analysis tests.
"""

import asyncio
from typing import Callable, List, Optional, Union

import pytest

from agents import AppContext
from core.events import EventBus
from memory.database import Database
from memory.suite_registry import SuiteRegistry
from memory.variable_store import VariableStore
from schemas import ChatMessage, ModelMessage, ModelResponse, RangeConfig


# --- Host fakes ---

class FakeChatHost:
    """In-memory ChatHost."""

    def __init__(self, chat_id: Optional[str] = "chat-1", messages: Optional[List[ChatMessage]] = None):
        self._chat_id = chat_id
        self.messages: List[ChatMessage] = list(messages or [])

    @property
    def chat_id(self) -> Optional[str]:
        return self._chat_id

    def get_messages(self) -> List[ChatMessage]:
        return list(self.messages)

    def switch_chat(self, chat_id: Optional[str], messages: Optional[List[ChatMessage]] = None) -> None:
        self._chat_id = chat_id
        self.messages = list(messages or [])

    def add_message(self, text: str, is_user: bool = False, name: Optional[str] = "Mira") -> int:
        self.messages.append(ChatMessage(text=text, is_user=is_user, name=name))
        return len(self.messages) - 1


class FakeModelClient:
    """
    Scripted ModelClient.

    reply may be a string, a callable taking the prompt, or an exception to
    raise. With blocking=True each call waits until release() is called.
    """

    def __init__(self, reply: Union[str, Callable[[str], str], Exception] = "", blocking: bool = False):
        self.reply = reply
        self.blocking = blocking
        self.calls: List[List[ModelMessage]] = []
        self.active = 0
        self.max_active = 0
        self.cancelled = 0
        self._gate = asyncio.Event()

    @property
    def prompts(self) -> List[str]:
        return [call[-1].content for call in self.calls]

    def release(self) -> None:
        self._gate.set()

    async def generate(self, messages: List[ModelMessage]) -> ModelResponse:
        self.calls.append(list(messages))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.blocking:
                await self._gate.wait()
            else:
                await asyncio.sleep(0)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.active -= 1

        if isinstance(self.reply, Exception):
            raise self.reply
        text = self.reply(messages[-1].content) if callable(self.reply) else self.reply
        return ModelResponse(text=text, model="fake")


class RecordingMacroRegistry:
    def __init__(self):
        self.handlers = {}

    def register_macro(self, name, handler):
        self.handlers[name] = handler

    def unregister_macro(self, name):
        self.handlers.pop(name, None)


def make_messages(count: int, user_every: int = 2) -> List[ChatMessage]:
    """Alternating user/assistant messages "msg 1" .. "msg N"."""
    return [
        ChatMessage(text=f"msg {i}", is_user=(i % user_every == 1), name=None if i % user_every == 1 else "Mira")
        for i in range(1, count + 1)
    ]


# --- Storage fixtures ---

@pytest.fixture
def db():
    """Fresh in-memory database."""
    database = Database("sqlite://")
    database.create_tables()
    yield database
    database.dispose()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def store(db, bus):
    return VariableStore(db, bus)


@pytest.fixture
def registry(db):
    return SuiteRegistry(db)


# --- Host fixtures ---

@pytest.fixture
def host():
    return FakeChatHost("chat-1", make_messages(10))


@pytest.fixture
def model():
    return FakeModelClient("[Summary]they met at the station[/Summary]")


@pytest.fixture
def macro_registry():
    return RecordingMacroRegistry()


@pytest.fixture
def app(db, bus, host, model, macro_registry):
    """Fully wired AppContext over the in-memory database."""
    ctx = AppContext.create(host, model=model, db=db, bus=bus, macro_registry=macro_registry)
    yield ctx
    ctx.queue.clear()


@pytest.fixture
def summary_suite(app):
    """A suite with one prompt, the last 4 floors and a stack variable "Summary"."""
    variable = app.store.create_variable("Summary", "Summary", "stack").variable
    suite = app.registry.create_suite("Memory")
    app.registry.add_prompt_item(suite.id, "Summarize the story so far.")
    app.registry.add_chat_content_item(suite.id, name="Recent", range_config=RangeConfig(type="latest", count=4))
    app.registry.add_variable_item(suite.id, variable.id)
    return app.registry.get_suite(suite.id)


# --- Async helpers ---

async def _wait_until(predicate: Callable[[], bool], attempts: int = 100) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("Condition not reached")


@pytest.fixture
def wait_until():
    """Yield to the event loop until predicate() holds."""
    return _wait_until
