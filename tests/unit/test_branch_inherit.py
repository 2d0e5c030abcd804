"""
Tests for carrying variable values into a branched conversation.
"""

import pytest

from memory.branch_inherit import floor_range_end, inherit_variables

SOURCE = "chat-main"
TARGET = "chat-branch"


@pytest.fixture
def plot(store):
    variable = store.create_variable("Plot", "Plot", "stack").variable
    store.add_entry(variable.id, SOURCE, "early", "1-10")
    store.add_entry(variable.id, SOURCE, "middle", "11-20")
    store.add_entry(variable.id, SOURCE, "late", "21-30")
    return variable


@pytest.fixture
def mood(store):
    variable = store.create_variable("Mood", "Mood", "replace").variable
    store.set_value(variable.id, SOURCE, "calm", "5")
    store.set_value(variable.id, SOURCE, "tense", "15")
    return variable


class TestFloorRangeEnd:
    @pytest.mark.parametrize(
        "text,expected",
        [("56-65", 65), ("12", 12), (" 3 - 7 ", 7), ("", None), (None, None), ("end", None)],
    )
    def test_parse(self, text, expected):
        assert floor_range_end(text) == expected


class TestInheritVariables:
    def test_stack_entries_up_to_branch_floor(self, store, plot):
        """Entries ending after the branch floor stay behind."""
        result = inherit_variables(store, SOURCE, TARGET, branch_floor=20)

        assert result.success
        assert result.inherited == 1
        value = store.get_stack_value(plot.id, TARGET)
        assert [e.content for e in value.entries] == ["early", "middle"]
        assert value.next_entry_id == 4

    def test_replace_current_value_without_history(self, store, mood):
        inherit_variables(store, SOURCE, TARGET, branch_floor=20)

        value = store.get_replace_value(mood.id, TARGET)
        assert value.current_value == "tense"
        assert value.history == []

    def test_replace_after_branch_floor_skipped(self, store, mood):
        result = inherit_variables(store, SOURCE, TARGET, branch_floor=10)

        assert result.inherited == 0
        assert result.skipped == 1
        assert store.get_replace_value(mood.id, TARGET).current_value == ""

    def test_custom_selection(self, store, plot, mood):
        result = inherit_variables(store, SOURCE, TARGET, 30, mode="custom", variable_ids=[mood.id])

        assert result.inherited == 1
        assert store.get_stack_value(plot.id, TARGET).entries == []
        assert store.get_replace_value(mood.id, TARGET).current_value == "tense"

    def test_source_untouched(self, store, plot):
        inherit_variables(store, SOURCE, TARGET, branch_floor=10)

        assert len(store.get_stack_value(plot.id, SOURCE).entries) == 3

    def test_persisted(self, db, store, plot):
        """Inherited values are written to the database."""
        inherit_variables(store, SOURCE, TARGET, branch_floor=10)

        assert db.load_value(plot.id, TARGET)["entries"][0]["content"] == "early"

    def test_empty_source(self, store):
        result = inherit_variables(store, SOURCE, TARGET, branch_floor=10)

        assert result.success
        assert result.inherited == 0

    @pytest.mark.parametrize("source,target", [(None, TARGET), (SOURCE, None), (SOURCE, SOURCE)])
    def test_invalid_chats(self, store, source, target):
        assert not inherit_variables(store, source, target, branch_floor=10).success
