"""
Tests for the trigger engine: interval counting, keyword matching, chat
switches and persisted counters.
"""

import pytest

from agents import TriggerEngine
from core.events import ConversationChanged, MessageReceived, MessageSent
from schemas import TriggerConfig

CHAT = "chat-1"


@pytest.fixture
def engine(app):
    app.engine.attach(app.bus)
    yield app.engine
    app.engine.close()


def make_suite(app, name: str, trigger: TriggerConfig, **kwargs):
    variable = app.store.create_variable(name, name, "stack").variable
    suite = app.registry.create_suite(name, trigger=trigger, **kwargs)
    app.registry.add_prompt_item(suite.id, "Analyze.")
    app.registry.add_variable_item(suite.id, variable.id)
    return suite


def queued_suites(app):
    return [t.suite_id for t in app.queue.get_tasks()]


class TestInterval:
    def test_fires_on_interval_and_resets(self, app, bus, host, engine):
        """Three messages with interval 3 enqueue once and reset the counter; a fourth does not."""
        suite = make_suite(app, "Every3", TriggerConfig(type="interval", interval=3))

        for i in range(3):
            bus.publish(MessageReceived(message_index=i))

        assert queued_suites(app) == [suite.id]
        assert engine.get_count(suite.id, CHAT) == 0

        bus.publish(MessageSent(message_index=3))

        assert queued_suites(app) == [suite.id]
        assert engine.get_count(suite.id, CHAT) == 1

    def test_default_interval(self, app, engine):
        """An interval trigger without a count uses five messages."""
        suite = make_suite(app, "Default", TriggerConfig(type="interval"))

        for i in range(4):
            engine.handle_message(i)
        assert queued_suites(app) == []

        engine.handle_message(4)
        assert queued_suites(app) == [suite.id]

    def test_counts_are_per_chat(self, app, host, engine):
        """Switching chats neither resets nor shares counters."""
        suite = make_suite(app, "Every3", TriggerConfig(type="interval", interval=3))
        engine.handle_message(0)
        engine.handle_message(1)

        host.switch_chat("chat-2")
        engine.handle_message(0)

        assert engine.get_count(suite.id, CHAT) == 2
        assert engine.get_count(suite.id, "chat-2") == 1

    def test_counters_persist(self, app, db, engine):
        """A new engine picks up the stored counters."""
        suite = make_suite(app, "Every3", TriggerConfig(type="interval", interval=3))
        engine.handle_message(0)
        engine.handle_message(1)

        reopened = TriggerEngine(app.registry, app.queue, app.host, db, app.store)

        assert reopened.get_count(suite.id, CHAT) == 2

    def test_disabled_suite_ignored(self, app, engine):
        suite = make_suite(app, "Off", TriggerConfig(type="interval", interval=1), enabled=False)

        engine.handle_message(0)

        assert queued_suites(app) == []
        assert engine.get_count(suite.id, CHAT) == 0

    def test_manual_never_fires(self, app, engine):
        make_suite(app, "Manual", TriggerConfig(type="manual"))

        for i in range(10):
            engine.handle_message(i)

        assert queued_suites(app) == []


class TestKeyword:
    @pytest.mark.parametrize(
        "text,fires",
        [
            ("They finally KISSED at the gate", True),
            ("a quiet evening", False),
            ("we are in BATTLE now", True),
        ],
    )
    def test_keyword_match_is_case_insensitive(self, app, host, engine, text, fires):
        suite = make_suite(app, "Events", TriggerConfig(type="keyword", keywords=["kissed", "Battle"]))
        index = host.add_message(text)

        enqueued = engine.handle_message(index)

        assert bool(enqueued) is fires
        assert queued_suites(app) == ([suite.id] if fires else [])

    def test_no_keywords_never_fires(self, app, host, engine):
        make_suite(app, "Events", TriggerConfig(type="keyword", keywords=[]))

        assert engine.handle_message(host.add_message("anything")) == []

    def test_out_of_range_index(self, app, engine):
        """An index past the end is treated as an empty message."""
        make_suite(app, "Events", TriggerConfig(type="keyword", keywords=["x"]))

        assert engine.handle_message(99) == []


class TestTriggerAnalysis:
    def test_snapshot_preference_carried_per_task(self, app, engine):
        """The suite's snapshot preference is set on the task, not on the queue."""
        default = app.queue.default_snapshot
        suite = make_suite(app, "Live", TriggerConfig(), use_snapshot_mode=not default)

        task = engine.trigger_analysis(suite.id)

        assert task.use_snapshot is (not default)
        assert app.queue.default_snapshot is default

    def test_suite_without_preference_uses_queue_default(self, app, engine):
        suite = make_suite(app, "Plain", TriggerConfig())

        task = engine.trigger_analysis(suite.id, "manual")

        assert task.use_snapshot is app.queue.default_snapshot
        assert task.trigger_type == "manual"

    def test_unknown_suite(self, app, engine):
        assert engine.trigger_analysis("suite_missing") is None
        assert app.queue.get_length() == 0

    def test_no_active_chat(self, app, host, engine):
        """Message events without a chat are ignored."""
        suite = make_suite(app, "Every1", TriggerConfig(type="interval", interval=1))
        host.switch_chat(None)

        assert engine.handle_message(0) == []
        assert engine.get_count(suite.id, CHAT) == 0


class TestConversationChanged:
    def test_refreshes_macros_and_preloads(self, app, bus, host, macro_registry, engine):
        """A chat switch re-registers macros and loads the new chat's values."""
        plot = app.store.create_variable("Plot", "Plot", "stack").variable
        app.store.add_entry(plot.id, "chat-2", "second chat entry", "1")
        app.store.evict_chat("chat-2")
        macro_registry.handlers.clear()

        host.switch_chat("chat-2")
        bus.publish(ConversationChanged(chat_id="chat-2"))

        assert app.store.is_chat_loaded("chat-2")
        assert "Plot" in macro_registry.handlers
        assert macro_registry.handlers["Plot"]("") == "second chat entry"

    def test_close_detaches(self, app, bus):
        make_suite(app, "Every1", TriggerConfig(type="interval", interval=1))
        app.engine.attach(bus)
        app.engine.close()

        bus.publish(MessageReceived(message_index=0))

        assert app.queue.get_length() == 0
