"""
Application context - builds and wires every component.

Usage:
    ctx = AppContext.create(host, model=LLMClient())
    ctx.start()
    ...
    ctx.close()
"""

from dataclasses import dataclass, field
from typing import List, Optional

from agents.analyzer import Analyzer
from agents.macro_registry import GlobalMacroBridge, InMemoryMacroRegistry
from agents.send_queue import AnalysisQueue
from agents.trigger_engine import TriggerEngine
from core import get_logger
from core.events import EventBus, Subscription, VariableDeleted
from core.interfaces import ChatHost, MacroRegistry, ModelClient, RegexScriptSource
from memory.database import Database
from memory.suite_registry import SuiteRegistry
from memory.variable_store import VariableStore
from utils.chat_content import ChatContentProcessor
from utils.macro_processor import MacroProcessor
from utils.prompt_builder import PromptBuilder

logger = get_logger(__name__)


@dataclass
class AppContext:
    db: Database
    bus: EventBus
    host: ChatHost
    store: VariableStore
    registry: SuiteRegistry
    analyzer: Analyzer
    queue: AnalysisQueue
    bridge: GlobalMacroBridge
    engine: TriggerEngine
    _subscriptions: List[Subscription] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        host: ChatHost,
        model: ModelClient,
        db: Optional[Database] = None,
        bus: Optional[EventBus] = None,
        macro_registry: Optional[MacroRegistry] = None,
        script_source: Optional[RegexScriptSource] = None,
        default_snapshot: Optional[bool] = None,
    ) -> "AppContext":
        db = db or Database()
        db.create_tables()
        bus = bus or EventBus()

        store = VariableStore(db, bus)
        registry = SuiteRegistry(db)
        builder = PromptBuilder(registry, MacroProcessor(store), ChatContentProcessor(script_source))
        analyzer = Analyzer(store, registry, host, model, builder)
        queue = AnalysisQueue(host, analyzer, bus, default_snapshot=default_snapshot)
        bridge = GlobalMacroBridge(store, host, macro_registry or InMemoryMacroRegistry(), bus)
        engine = TriggerEngine(registry, queue, host, db, store, bridge)

        ctx = cls(
            db=db,
            bus=bus,
            host=host,
            store=store,
            registry=registry,
            analyzer=analyzer,
            queue=queue,
            bridge=bridge,
            engine=engine,
        )
        ctx._subscriptions.append(bus.subscribe(VariableDeleted, ctx._on_variable_deleted))
        logger.info("Application context created", variables=len(store.get_definitions()), suites=len(registry.get_suites()))
        return ctx

    def _on_variable_deleted(self, event: VariableDeleted) -> None:
        self.registry.remove_variable_from_all_suites(event.variable_id)

    def start(self) -> None:
        """Register macros, preload the current chat and start listening to chat events."""
        self.bridge.register_all()
        self.bridge.preload()
        self.engine.attach(self.bus)

    def close(self) -> None:
        self.engine.close()
        self.queue.clear()
        self.bridge.close()
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        self.db.dispose()
        logger.info("Application context closed")
