"""
Trigger engine - decides when suites run.

Listens for host message events and enqueues analysis for every enabled
suite whose trigger fires:
    - interval: every N messages per (suite, chat); the counter then resets
    - keyword: the triggering message contains a keyword (case-insensitive)
    - manual: never automatic

Counters are persisted per chat, so switching conversations does not reset
them.
"""

from typing import Dict, List, Optional

from agents.macro_registry import GlobalMacroBridge
from agents.send_queue import AnalysisQueue
from config.settings import settings
from core import get_logger
from core.events import ConversationChanged, EventBus, MessageReceived, MessageSent, Subscription
from core.interfaces import ChatHost
from memory.database import Database
from memory.suite_registry import SuiteRegistry
from memory.variable_store import VariableStore
from schemas import QueueTask, Suite

logger = get_logger(__name__)

MESSAGE_COUNTS_KEY = "messageCounts"


class TriggerEngine:
    def __init__(
        self,
        registry: SuiteRegistry,
        queue: AnalysisQueue,
        host: ChatHost,
        db: Database,
        store: VariableStore,
        bridge: Optional[GlobalMacroBridge] = None,
    ):
        self.registry = registry
        self.queue = queue
        self.host = host
        self.db = db
        self.store = store
        self.bridge = bridge
        self.message_counts: Dict[str, Dict[str, int]] = db.get_setting(MESSAGE_COUNTS_KEY, {}) or {}
        self._subscriptions: List[Subscription] = []

    def attach(self, bus: EventBus) -> None:
        """Start listening to host chat events."""
        if self._subscriptions:
            logger.debug("Trigger engine already attached")
            return
        self._subscriptions = [
            bus.subscribe(MessageSent, lambda e: self.handle_message(e.message_index, "sent")),
            bus.subscribe(MessageReceived, lambda e: self.handle_message(e.message_index, "received")),
            bus.subscribe(ConversationChanged, self.on_conversation_changed),
        ]
        logger.info("Trigger engine attached")

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        self.queue.abort_current()

    # ==================== Event handling ====================

    def handle_message(self, message_index: int, source: str = "received") -> List[QueueTask]:
        """
        Evaluate every enabled suite for one new message.

        Returns:
            Tasks enqueued by this message
        """
        chat_id = self.host.chat_id
        if not chat_id:
            logger.warning("Message event without active chat", source=source)
            return []

        messages = self.host.get_messages()
        text = messages[message_index].text if 0 <= message_index < len(messages) else ""

        enqueued = []
        for suite in self.registry.get_enabled_suites():
            trigger = suite.trigger
            if trigger.type == "interval":
                count = self._increment(suite.id, chat_id)
                interval = trigger.interval or settings.DEFAULT_TRIGGER_INTERVAL
                if count >= interval:
                    logger.info("Interval trigger fired", suite=suite.name, count=count)
                    task = self.trigger_analysis(suite.id, "interval")
                    if task is not None:
                        enqueued.append(task)
                    self.reset_count(suite.id, chat_id)
            elif trigger.type == "keyword":
                if self.check_keywords(text, suite):
                    logger.info("Keyword trigger fired", suite=suite.name)
                    task = self.trigger_analysis(suite.id, "keyword")
                    if task is not None:
                        enqueued.append(task)
        return enqueued

    def on_conversation_changed(self, event: ConversationChanged) -> None:
        logger.debug("Conversation changed", chat_id=event.chat_id)
        if self.bridge is not None:
            self.bridge.refresh()
        self.store.preload(self.host.chat_id)

    # ==================== Counters ====================

    def _increment(self, suite_id: str, chat_id: str) -> int:
        counts = self.message_counts.setdefault(suite_id, {})
        counts[chat_id] = counts.get(chat_id, 0) + 1
        self._save_counts()
        return counts[chat_id]

    def get_count(self, suite_id: str, chat_id: str) -> int:
        return self.message_counts.get(suite_id, {}).get(chat_id, 0)

    def reset_count(self, suite_id: str, chat_id: str) -> None:
        if suite_id in self.message_counts:
            self.message_counts[suite_id][chat_id] = 0
            self._save_counts()

    def _save_counts(self) -> None:
        self.db.set_setting(MESSAGE_COUNTS_KEY, self.message_counts)

    # ==================== Triggers ====================

    @staticmethod
    def check_keywords(message: str, suite: Suite) -> bool:
        keywords = suite.trigger.keywords
        if not keywords or not message:
            return False
        lowered = message.lower()
        return any(keyword.lower() in lowered for keyword in keywords if keyword)

    def trigger_analysis(self, suite_id: str, trigger_type: str = "manual") -> Optional[QueueTask]:
        """Enqueue a suite, carrying its snapshot preference on the task."""
        suite = self.registry.get_suite(suite_id)
        if suite is None:
            logger.warning("Trigger for unknown suite", suite_id=suite_id)
            return None
        task = self.queue.enqueue(suite.id, suite.name, trigger_type, use_snapshot=suite.use_snapshot_mode)
        logger.info("Analysis enqueued", suite=suite.name, trigger_type=trigger_type, task_id=task.id)
        return task

    def is_analyzing(self) -> bool:
        return self.queue.is_processing()
