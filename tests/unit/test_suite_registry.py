"""
Tests for the suite registry: suite CRUD, item rules and queries.
"""

import pytest

from memory.suite_registry import SuiteRegistry
from schemas import ChatContentItem, PromptItem, RangeConfig, TriggerConfig


@pytest.fixture
def suite(registry):
    return registry.create_suite("Memory")


class TestSuites:
    """Suite CRUD and the active suite."""

    def test_first_suite_becomes_active(self, registry):
        """The first suite created in an empty registry is active."""
        first = registry.create_suite("One")
        registry.create_suite("Two")

        assert registry.get_active_suite().id == first.id

    def test_set_active_suite(self, registry):
        """Should switch the active suite, refusing unknown ids."""
        registry.create_suite("One")
        two = registry.create_suite("Two")

        assert registry.set_active_suite(two.id)
        assert registry.get_active_suite().id == two.id
        assert not registry.set_active_suite("suite_missing")

    def test_delete_active_activates_remaining(self, registry):
        """Deleting the active suite activates another one."""
        one = registry.create_suite("One")
        two = registry.create_suite("Two")

        assert registry.delete_suite(one.id)
        assert registry.get_active_suite().id == two.id

        registry.delete_suite(two.id)
        assert registry.get_active_suite() is None

    def test_update_suite_ignores_identity_fields(self, registry, suite):
        """Should update allowed fields only."""
        original_id = suite.id

        assert registry.update_suite(suite.id, name="Renamed", id="hijack", trigger=TriggerConfig(type="interval", interval=3))

        updated = registry.get_suite(original_id)
        assert updated.name == "Renamed"
        assert updated.trigger.interval == 3
        assert registry.get_suite("hijack") is None

    def test_update_unknown_suite(self, registry):
        assert not registry.update_suite("suite_missing", name="x")

    def test_suites_persist(self, db, registry, suite):
        """A new registry over the same database sees suites, items and the active id."""
        registry.add_prompt_item(suite.id, "Hello")
        registry.add_chat_content_item(suite.id, range_config=RangeConfig(type="fixed", start=1, end=3))

        reopened = SuiteRegistry(db)

        restored = reopened.get_suite(suite.id)
        assert [type(item) for item in restored.items] == [PromptItem, ChatContentItem]
        assert restored.items[1].range_config.end == 3
        assert reopened.get_active_suite().id == suite.id

    def test_enabled_suites(self, registry):
        """Disabled suites are excluded."""
        registry.create_suite("On")
        registry.create_suite("Off", enabled=False)

        assert [s.name for s in registry.get_enabled_suites()] == ["On"]


class TestItems:
    """Item insertion, uniqueness, updates and ordering."""

    def test_add_at_index(self, registry, suite):
        """Items are inserted at the requested index."""
        a = registry.add_prompt_item(suite.id, "a")
        b = registry.add_prompt_item(suite.id, "b")
        c = registry.add_prompt_item(suite.id, "c", index=1)

        assert [i.id for i in registry.get_suite(suite.id).items] == [a.id, c.id, b.id]

    def test_variable_item_unique(self, registry, suite):
        """The same variable cannot be added twice."""
        assert registry.add_variable_item(suite.id, "var_1") is not None
        assert registry.add_variable_item(suite.id, "var_1") is None

    def test_fixed_char_items_unique_per_character(self, registry, suite):
        """One item per (character, sub type) for the fixed sub types."""
        assert registry.add_char_prompt_item(suite.id, "alice", "char-desc") is not None
        assert registry.add_char_prompt_item(suite.id, "alice", "char-desc") is None
        assert registry.add_char_prompt_item(suite.id, "bob", "char-desc") is not None

    def test_worldbook_items_unique_per_entry(self, registry, suite):
        """Worldbook items are unique per entry uid."""
        assert registry.add_char_prompt_item(suite.id, "alice", "worldbook", entry_uid=1) is not None
        assert registry.add_char_prompt_item(suite.id, "alice", "worldbook", entry_uid=2) is not None
        assert registry.add_char_prompt_item(suite.id, "alice", "worldbook", entry_uid=1) is None

    def test_update_prompt_item(self, registry, suite):
        """Should update allowed fields."""
        item = registry.add_prompt_item(suite.id, "a")

        assert registry.update_prompt_item(suite.id, item.id, content="b", enabled=False)

        updated = registry.get_suite(suite.id).find_item(item.id)
        assert updated.content == "b"
        assert updated.enabled is False

    def test_update_wrong_item_type(self, registry, suite):
        """Updating a prompt item through the chat-content updater fails."""
        item = registry.add_prompt_item(suite.id, "a")

        assert not registry.update_chat_content_item(suite.id, item.id, name="x")

    def test_remove_item(self, registry, suite):
        item = registry.add_prompt_item(suite.id, "a")

        assert registry.remove_item(suite.id, item.id)
        assert registry.get_suite(suite.id).items == []
        assert not registry.remove_item(suite.id, item.id)

    def test_reorder_items(self, registry, suite):
        """Should accept a full reordering."""
        a = registry.add_prompt_item(suite.id, "a")
        b = registry.add_prompt_item(suite.id, "b")

        assert registry.reorder_items(suite.id, [b.id, a.id]).success
        assert [i.id for i in registry.get_suite(suite.id).items] == [b.id, a.id]

    def test_reorder_items_rejects_partial(self, registry, suite):
        """A list that does not cover every item is rejected."""
        a = registry.add_prompt_item(suite.id, "a")
        b = registry.add_prompt_item(suite.id, "b")

        result = registry.reorder_items(suite.id, [b.id, "item_missing"])

        assert not result.success
        assert [i.id for i in registry.get_suite(suite.id).items] == [a.id, b.id]


class TestQueries:
    """Visible content and enabled variables."""

    def test_visible_content_items(self, registry, suite):
        """Keeps order, drops disabled items and non-content items."""
        a = registry.add_prompt_item(suite.id, "a")
        registry.add_variable_item(suite.id, "var_1")
        chat = registry.add_chat_content_item(suite.id)
        hidden = registry.add_prompt_item(suite.id, "hidden")
        registry.add_char_prompt_item(suite.id, "alice", "char-desc")
        registry.update_prompt_item(suite.id, hidden.id, enabled=False)

        visible = registry.get_visible_content_items(suite.id)

        assert [i.id for i in visible] == [a.id, chat.id]

    def test_enabled_variable_ids(self, registry, suite):
        """Disabled variable items are not requested."""
        registry.add_variable_item(suite.id, "var_1")
        registry.add_variable_item(suite.id, "var_2")
        registry.update_variable_item(suite.id, "var_2", enabled=False)

        assert registry.get_enabled_variable_ids(suite.id) == ["var_1"]

    def test_remove_variable_from_all_suites(self, registry):
        """Should drop the variable from every suite that references it."""
        one = registry.create_suite("One")
        two = registry.create_suite("Two")
        registry.create_suite("Three")
        registry.add_variable_item(one.id, "var_1")
        registry.add_variable_item(two.id, "var_1")
        registry.add_variable_item(two.id, "var_2")

        assert registry.remove_variable_from_all_suites("var_1") == 2
        assert registry.get_enabled_variable_ids(one.id) == []
        assert registry.get_enabled_variable_ids(two.id) == ["var_2"]

    def test_queries_on_unknown_suite(self, registry):
        assert registry.get_visible_content_items("suite_missing") == []
        assert registry.get_enabled_variable_ids("suite_missing") == []
