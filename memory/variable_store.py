"""
Variable store - definitions plus per-chat values.

Definitions are global; values are keyed by (variable_id, chat_id) and hold
either a StackValue or a ReplaceValue depending on the definition's mode.
Every mutation updates the in-memory cache and writes the value blob through
to the database before returning.

Validation problems are returned as OperationResult values, never raised.
"""

import re
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from config.settings import settings
from core import CorruptRecordError, get_logger
from core.events import EventBus, VariableCreated, VariableDeleted, VariableRenamed
from memory.database import Database
from schemas import (
    DisplayValue,
    EntryResult,
    HistoryResult,
    OperationResult,
    ReplaceValue,
    StackValue,
    VariableDefinition,
    VariableEntry,
    VariableResult,
    VariableValue,
    empty_value,
    new_id,
    now_ms,
    value_from_record,
)

logger = get_logger(__name__)

NAME_PATTERN = re.compile(r"^[A-Za-z0-9_\u4e00-\u9fa5]+$")
BUILTIN_MACRO_NAMES = ("LastMessageId", "lastMessageId")


def reserved_macro_names() -> List[str]:
    return [settings.CHAT_FLOOR_MACRO_NAME, *BUILTIN_MACRO_NAMES]


class VariableStore:
    """Owns variable definitions and their per-chat values."""

    def __init__(self, db: Database, bus: Optional[EventBus] = None):
        self.db = db
        self.bus = bus or EventBus()
        self._definitions: Dict[str, VariableDefinition] = {}
        # chat_id -> variable_id -> value
        self._values: Dict[str, Dict[str, VariableValue]] = {}
        self.reload()

    def reload(self) -> None:
        """Reload definitions from the database and drop every cached value."""
        self._definitions = {d.id: d for d in self.db.load_definitions()}
        self._values = {}
        logger.info("Variable definitions loaded", count=len(self._definitions))

    # ==================== Definitions ====================

    def get_definitions(self) -> List[VariableDefinition]:
        return list(self._definitions.values())

    def get_definition(self, variable_id: str) -> Optional[VariableDefinition]:
        return self._definitions.get(variable_id)

    def get_definition_by_name(self, name: str) -> Optional[VariableDefinition]:
        for definition in self._definitions.values():
            if definition.name == name:
                return definition
        return None

    def get_definition_by_tag(self, tag: str) -> Optional[VariableDefinition]:
        for definition in self._definitions.values():
            if definition.tag == tag:
                return definition
        return None

    def validate_name(self, name: Optional[str]) -> OperationResult:
        if not name or not name.strip():
            return OperationResult.fail("Variable name cannot be empty")
        name = name.strip()
        if not NAME_PATTERN.match(name):
            return OperationResult.fail(
                "Variable name may only contain letters, digits, underscores and CJK characters"
            )
        if name in reserved_macro_names():
            return OperationResult.fail(f'"{name}" is a reserved macro name')
        return OperationResult.ok()

    @staticmethod
    def validate_tag(tag: Optional[str]) -> OperationResult:
        if not tag or not tag.strip():
            return OperationResult.fail("Tag cannot be empty")
        return OperationResult.ok()

    def is_name_duplicate(self, name: str, exclude_id: Optional[str] = None) -> bool:
        return any(d.name == name and d.id != exclude_id for d in self._definitions.values())

    def is_tag_duplicate(self, tag: str, exclude_id: Optional[str] = None) -> bool:
        return any(d.tag == tag and d.id != exclude_id for d in self._definitions.values())

    def create_variable(self, name: str, tag: str, mode: str) -> VariableResult:
        """
        Create a variable definition.

        Args:
            name: Macro name, unique across definitions
            tag: Output tag, unique across definitions
            mode: "stack" or "replace"

        Returns:
            VariableResult carrying the new definition on success
        """
        validation = self.validate_name(name)
        if not validation.success:
            return VariableResult.fail(validation.error)
        validation = self.validate_tag(tag)
        if not validation.success:
            return VariableResult.fail(validation.error)

        name = name.strip()
        tag = tag.strip()
        if self.is_name_duplicate(name):
            return VariableResult.fail(f'Variable name "{name}" already exists')
        if self.is_tag_duplicate(tag):
            return VariableResult.fail(f'Tag "{tag}" is already in use')
        if mode not in ("stack", "replace"):
            return VariableResult.fail("Mode must be stack or replace")

        definition = VariableDefinition(id=new_id("var"), name=name, tag=tag, mode=mode)
        self.db.save_definition(definition)
        self._definitions[definition.id] = definition

        logger.info("Variable created", variable_id=definition.id, name=name, mode=mode)
        self.bus.publish(VariableCreated(variable_id=definition.id, name=name))
        return VariableResult.ok(variable=definition)

    def update_variable(self, variable_id: str, name: Optional[str] = None) -> VariableResult:
        """Rename a variable. Tag and mode are fixed at creation."""
        definition = self._definitions.get(variable_id)
        if definition is None:
            return VariableResult.fail("Variable not found")

        old_name = definition.name
        if name is not None:
            validation = self.validate_name(name)
            if not validation.success:
                return VariableResult.fail(validation.error)
            name = name.strip()
            if self.is_name_duplicate(name, exclude_id=variable_id):
                return VariableResult.fail(f'Variable name "{name}" already exists')
            definition.name = name

        definition.updated_at = now_ms()
        self.db.save_definition(definition)
        logger.info("Variable updated", variable_id=variable_id, name=definition.name)

        if definition.name != old_name:
            self.bus.publish(
                VariableRenamed(variable_id=variable_id, old_name=old_name, new_name=definition.name)
            )
        return VariableResult.ok(variable=definition)

    def delete_variable(self, variable_id: str) -> OperationResult:
        """
        Delete a definition and every value it has in any chat.

        Suite references and macro registrations are cleaned up by the
        VariableDeleted subscribers.
        """
        definition = self._definitions.pop(variable_id, None)
        if definition is None:
            return OperationResult.fail("Variable not found")

        self.db.delete_definition(variable_id)
        self.db.delete_values_for_variable(variable_id)
        for chat_values in self._values.values():
            chat_values.pop(variable_id, None)

        logger.info("Variable deleted", variable_id=variable_id, name=definition.name)
        self.bus.publish(VariableDeleted(variable_id=variable_id, name=definition.name))
        return OperationResult.ok()

    # ==================== Value cache ====================

    def is_chat_loaded(self, chat_id: str) -> bool:
        return chat_id in self._values

    def load_chat_values(self, chat_id: str) -> Dict[str, VariableValue]:
        """Load (or reload) every value of a chat into the cache."""
        values: Dict[str, VariableValue] = {}
        for variable_id, data in self.db.load_values(chat_id).items():
            definition = self._definitions.get(variable_id)
            if definition is None:
                continue
            try:
                values[variable_id] = value_from_record(definition.mode, data)
            except ValidationError as e:
                raise CorruptRecordError("variable_values", [variable_id, chat_id], str(e)) from e
        self._values[chat_id] = values
        logger.debug("Chat values loaded", chat_id=chat_id, count=len(values))
        return values

    def preload(self, chat_id: Optional[str]) -> bool:
        """Load a chat's values unless they are already cached. Returns True if a load happened."""
        if not chat_id:
            logger.warning("Preload skipped, no chat id")
            return False
        if self.is_chat_loaded(chat_id):
            return False
        self.load_chat_values(chat_id)
        return True

    def get_chat_values(self, chat_id: str) -> Dict[str, VariableValue]:
        """Every stored value of a chat, loading it if needed."""
        if chat_id not in self._values:
            self.load_chat_values(chat_id)
        return dict(self._values[chat_id])

    def evict_chat(self, chat_id: str) -> None:
        self._values.pop(chat_id, None)

    def get_cached_value(self, variable_id: str, chat_id: Optional[str]) -> Optional[VariableValue]:
        """Memory-only lookup. Never touches the database."""
        if not chat_id:
            return None
        return self._values.get(chat_id, {}).get(variable_id)

    def get_value(self, variable_id: str, chat_id: Optional[str]) -> Optional[VariableValue]:
        """Value for a chat, loading the chat from the database if needed."""
        definition = self._definitions.get(variable_id)
        if definition is None or not chat_id:
            return None
        return self._value(definition, chat_id)

    def _value(self, definition: VariableDefinition, chat_id: str) -> VariableValue:
        if chat_id not in self._values:
            self.load_chat_values(chat_id)
        chat_values = self._values[chat_id]
        value = chat_values.get(definition.id)
        if value is None:
            value = empty_value(definition.mode)
            chat_values[definition.id] = value
        return value

    def _save(self, variable_id: str, chat_id: str, value: VariableValue) -> None:
        self.db.save_value(variable_id, chat_id, value.to_record())
        self._values.setdefault(chat_id, {})[variable_id] = value

    def set_chat_value(self, variable_id: str, chat_id: str, value: VariableValue) -> OperationResult:
        """Install a whole value blob, used when copying values between chats."""
        definition = self._definitions.get(variable_id)
        if definition is None:
            return OperationResult.fail("Variable not found")
        expected = StackValue if definition.mode == "stack" else ReplaceValue
        if not isinstance(value, expected):
            return OperationResult.fail(f"Value does not match {definition.mode} mode")
        if chat_id not in self._values:
            self.load_chat_values(chat_id)
        self._save(variable_id, chat_id, value)
        return OperationResult.ok()

    def _resolve(self, variable_id: str, chat_id: Optional[str], mode: str):
        """Return (definition, error) for a value operation."""
        if not chat_id:
            logger.warning("No active chat, value operation skipped", variable_id=variable_id)
            return None, "No active chat"
        definition = self._definitions.get(variable_id)
        if definition is None:
            return None, "Variable not found"
        if definition.mode != mode:
            return None, f'Variable "{definition.name}" is not in {mode} mode'
        return definition, None

    # ==================== Stack mode ====================

    def get_stack_value(self, variable_id: str, chat_id: Optional[str]) -> StackValue:
        definition, error = self._resolve(variable_id, chat_id, "stack")
        if error:
            return StackValue()
        return self._value(definition, chat_id)

    def get_visible_entries(self, variable_id: str, chat_id: Optional[str]) -> List[VariableEntry]:
        return self.get_stack_value(variable_id, chat_id).visible_entries()

    def add_entry(self, variable_id: str, chat_id: Optional[str], content: str, floor_range: str) -> EntryResult:
        """Append an entry with the next monotonic id."""
        definition, error = self._resolve(variable_id, chat_id, "stack")
        if error:
            return EntryResult.fail(error)

        value: StackValue = self._value(definition, chat_id)
        entry = VariableEntry(id=value.next_entry_id, content=content, floor_range=floor_range)
        value.entries.append(entry)
        value.next_entry_id += 1
        self._save(variable_id, chat_id, value)

        logger.debug("Entry added", variable_id=variable_id, entry_id=entry.id, floor_range=floor_range)
        return EntryResult.ok(entry=entry)

    def _find_entry(self, value: StackValue, entry_id: int) -> Optional[VariableEntry]:
        for entry in value.entries:
            if entry.id == entry_id:
                return entry
        return None

    def update_entry(self, variable_id: str, chat_id: Optional[str], entry_id: int, content: str) -> EntryResult:
        definition, error = self._resolve(variable_id, chat_id, "stack")
        if error:
            return EntryResult.fail(error)
        value: StackValue = self._value(definition, chat_id)
        entry = self._find_entry(value, entry_id)
        if entry is None:
            return EntryResult.fail("Entry not found")

        entry.content = content
        self._save(variable_id, chat_id, value)
        logger.debug("Entry updated", variable_id=variable_id, entry_id=entry_id)
        return EntryResult.ok(entry=entry)

    def delete_entry(self, variable_id: str, chat_id: Optional[str], entry_id: int) -> EntryResult:
        definition, error = self._resolve(variable_id, chat_id, "stack")
        if error:
            return EntryResult.fail(error)
        value: StackValue = self._value(definition, chat_id)
        entry = self._find_entry(value, entry_id)
        if entry is None:
            return EntryResult.fail("Entry not found")

        value.entries.remove(entry)
        self._save(variable_id, chat_id, value)
        logger.debug("Entry deleted", variable_id=variable_id, entry_id=entry_id)
        return EntryResult.ok(entry=entry)

    def toggle_visibility(self, variable_id: str, chat_id: Optional[str], entry_id: int) -> EntryResult:
        definition, error = self._resolve(variable_id, chat_id, "stack")
        if error:
            return EntryResult.fail(error)
        value: StackValue = self._value(definition, chat_id)
        entry = self._find_entry(value, entry_id)
        if entry is None:
            return EntryResult.fail("Entry not found")

        entry.hidden = not entry.hidden
        self._save(variable_id, chat_id, value)
        logger.debug("Entry visibility toggled", variable_id=variable_id, entry_id=entry_id, hidden=entry.hidden)
        return EntryResult.ok(entry=entry, hidden=entry.hidden)

    def reorder_entries(self, variable_id: str, chat_id: Optional[str], new_order: Iterable[int]) -> OperationResult:
        """
        Reorder entries by id. new_order must be a permutation of the
        existing ids; anything else is rejected and nothing changes.
        """
        definition, error = self._resolve(variable_id, chat_id, "stack")
        if error:
            return OperationResult.fail(error)
        value: StackValue = self._value(definition, chat_id)
        new_order = list(new_order)

        if not value.entries:
            return OperationResult.fail("No entries to reorder")

        existing = {entry.id: entry for entry in value.entries}
        if len(new_order) != len(existing) or len(set(new_order)) != len(new_order):
            return OperationResult.fail("Order does not match the existing entries")
        for entry_id in new_order:
            if entry_id not in existing:
                return OperationResult.fail(f"Entry {entry_id} not found")

        value.entries = [existing[entry_id] for entry_id in new_order]
        self._save(variable_id, chat_id, value)
        logger.debug("Entries reordered", variable_id=variable_id, order=new_order)
        return OperationResult.ok()

    # ==================== Replace mode ====================

    def get_replace_value(self, variable_id: str, chat_id: Optional[str]) -> ReplaceValue:
        definition, error = self._resolve(variable_id, chat_id, "replace")
        if error:
            return ReplaceValue()
        return self._value(definition, chat_id)

    @staticmethod
    def _push_current(value: ReplaceValue) -> None:
        if value.current_value:
            value.history.append(
                VariableEntry(
                    id=len(value.history) + 1,
                    content=value.current_value,
                    floor_range=value.current_floor_range,
                )
            )

    def set_value(self, variable_id: str, chat_id: Optional[str], content: str, floor_range: str) -> OperationResult:
        """Push the current value (if any) onto history, then install the new one."""
        definition, error = self._resolve(variable_id, chat_id, "replace")
        if error:
            return OperationResult.fail(error)
        value: ReplaceValue = self._value(definition, chat_id)

        self._push_current(value)
        value.current_value = content
        value.current_floor_range = floor_range
        value.history_index = -1
        self._save(variable_id, chat_id, value)

        logger.debug("Value set", variable_id=variable_id, floor_range=floor_range, history=len(value.history))
        return OperationResult.ok()

    def navigate_history(self, variable_id: str, chat_id: Optional[str], direction: str) -> HistoryResult:
        """
        Move the displayed position through history.

        Positions run oldest history entry (1) to the current value (total).
        "prev" moves toward older entries, "next" toward the current value.
        """
        definition, error = self._resolve(variable_id, chat_id, "replace")
        if error:
            return HistoryResult.fail(error)
        if direction not in ("prev", "next"):
            return HistoryResult.fail("Direction must be prev or next")

        value: ReplaceValue = self._value(definition, chat_id)
        total = len(value.history) + 1
        if total <= 1:
            return HistoryResult.fail("No history", total=total)

        index = value.history_index
        if direction == "prev":
            if index == -1:
                index = len(value.history) - 1
            elif index > 0:
                index -= 1
            else:
                return HistoryResult.fail("Already at the oldest entry", total=total)
        else:
            if index == -1:
                return HistoryResult.fail("Already at the current value", total=total)
            elif index < len(value.history) - 1:
                index += 1
            else:
                index = -1

        value.history_index = index
        self._save(variable_id, chat_id, value)

        display_index = total if index == -1 else index + 1
        return HistoryResult.ok(index=display_index, total=total)

    def apply_history_version(self, variable_id: str, chat_id: Optional[str], history_index: int) -> OperationResult:
        """Promote history[history_index] to the current value."""
        definition, error = self._resolve(variable_id, chat_id, "replace")
        if error:
            return OperationResult.fail(error)
        value: ReplaceValue = self._value(definition, chat_id)

        if history_index < 0 or history_index >= len(value.history):
            return OperationResult.fail("Invalid history index")

        promoted = value.history[history_index]
        self._push_current(value)
        value.current_value = promoted.content
        value.current_floor_range = promoted.floor_range
        value.history_index = -1
        self._save(variable_id, chat_id, value)

        logger.info("History version applied", variable_id=variable_id, history_index=history_index)
        return OperationResult.ok()

    def get_current_display_value(self, variable_id: str, chat_id: Optional[str]) -> DisplayValue:
        value = self.get_replace_value(variable_id, chat_id)
        return display_value_of(value)

    # ==================== Macro values ====================

    def get_variable_value(self, variable_id: str, chat_id: Optional[str]) -> str:
        """Whole-value text: visible stack entries blank-line joined, or the replace display value."""
        definition = self._definitions.get(variable_id)
        if definition is None or not chat_id:
            return ""
        return render_value(self._value(definition, chat_id))

    def get_value_by_name(self, name: str, chat_id: Optional[str]) -> str:
        definition = self.get_definition_by_name(name)
        if definition is None:
            return ""
        return self.get_variable_value(definition.id, chat_id)


def display_value_of(value: ReplaceValue) -> DisplayValue:
    if value.history_index == -1 or value.history_index >= len(value.history):
        return DisplayValue(content=value.current_value, floor_range=value.current_floor_range)
    entry = value.history[value.history_index]
    return DisplayValue(content=entry.content, floor_range=entry.floor_range, is_history=True)


def render_value(value: VariableValue) -> str:
    if isinstance(value, StackValue):
        return "\n\n".join(entry.content for entry in value.visible_entries())
    if isinstance(value, ReplaceValue):
        return display_value_of(value).content
    raise TypeError(f"Unknown variable value type: {type(value).__name__}")
