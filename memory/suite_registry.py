"""
Suite registry - CRUD for suites, their items and triggers.

Suites are cached in insertion order and written through to the database on
every change. The active suite id lives in the settings table.
"""

from typing import Any, Dict, List, Optional

from core import get_logger
from memory.database import Database
from schemas import (
    CharPromptItem,
    ChatContentItem,
    ContentItem,
    OperationResult,
    PromptItem,
    RangeConfig,
    RegexConfig,
    Suite,
    TriggerConfig,
    VariableItem,
    new_id,
    now_ms,
)
from schemas.suite import FIXED_CHAR_SUBTYPES

logger = get_logger(__name__)

ACTIVE_SUITE_KEY = "activeSuiteId"

# Fields update_suite may change; id and created_at are immutable
SUITE_UPDATABLE_FIELDS = ("name", "enabled", "trigger", "items", "use_snapshot_mode")


class SuiteRegistry:
    """Owns suites and the active suite selection."""

    def __init__(self, db: Database):
        self.db = db
        self._suites: Dict[str, Suite] = {}
        self.active_suite_id: Optional[str] = None
        self.reload()

    def reload(self) -> None:
        self._suites = {suite.id: suite for suite in self.db.load_suites()}
        active = self.db.get_setting(ACTIVE_SUITE_KEY)
        self.active_suite_id = active if active in self._suites else None
        logger.info("Suites loaded", count=len(self._suites), active_suite_id=self.active_suite_id)

    def _save(self, suite: Suite, touch: bool = True) -> None:
        if touch:
            suite.updated_at = now_ms()
        self.db.save_suite(suite)

    def _save_active(self) -> None:
        self.db.set_setting(ACTIVE_SUITE_KEY, self.active_suite_id)

    # ==================== Suite CRUD ====================

    def get_suites(self) -> List[Suite]:
        return list(self._suites.values())

    def get_suite(self, suite_id: str) -> Optional[Suite]:
        return self._suites.get(suite_id)

    def get_active_suite(self) -> Optional[Suite]:
        if not self.active_suite_id:
            return None
        return self._suites.get(self.active_suite_id)

    def set_active_suite(self, suite_id: str) -> bool:
        suite = self._suites.get(suite_id)
        if suite is None:
            logger.warning("Cannot activate unknown suite", suite_id=suite_id)
            return False
        self.active_suite_id = suite_id
        self._save_active()
        logger.info("Active suite changed", suite_id=suite_id, name=suite.name)
        return True

    def create_suite(
        self,
        name: str = "New suite",
        enabled: bool = True,
        trigger: Optional[TriggerConfig] = None,
        items: Optional[list] = None,
        use_snapshot_mode: Optional[bool] = None,
    ) -> Suite:
        """Create a suite. The first suite in an empty registry becomes active."""
        suite = Suite(
            id=new_id("suite"),
            name=name or "New suite",
            enabled=enabled,
            trigger=trigger or TriggerConfig(),
            items=items or [],
            use_snapshot_mode=use_snapshot_mode,
        )
        self._suites[suite.id] = suite
        self._save(suite, touch=False)

        if len(self._suites) == 1:
            self.active_suite_id = suite.id
            self._save_active()

        logger.info("Suite created", suite_id=suite.id, name=suite.name)
        return suite

    def update_suite(self, suite_id: str, **updates: Any) -> bool:
        """
        Update suite fields.

        Args:
            suite_id: Suite to update
            **updates: Any of name, enabled, trigger, items, use_snapshot_mode.
                id and created_at are ignored.

        Returns:
            True if the suite exists and was saved
        """
        suite = self._suites.get(suite_id)
        if suite is None:
            logger.warning("Suite not found", suite_id=suite_id)
            return False

        for field_name, value in updates.items():
            if field_name in SUITE_UPDATABLE_FIELDS:
                setattr(suite, field_name, value)
        self._save(suite)
        logger.info("Suite updated", suite_id=suite_id, fields=sorted(updates))
        return True

    def delete_suite(self, suite_id: str) -> bool:
        """Delete a suite. Deleting the active suite activates any remaining one."""
        suite = self._suites.pop(suite_id, None)
        if suite is None:
            logger.warning("Suite not found", suite_id=suite_id)
            return False

        self.db.delete_suite(suite_id)
        if self.active_suite_id == suite_id:
            remaining = list(self._suites)
            self.active_suite_id = remaining[0] if remaining else None
            self._save_active()

        logger.info("Suite deleted", suite_id=suite_id, name=suite.name, active_suite_id=self.active_suite_id)
        return True

    # ==================== Items ====================

    @staticmethod
    def _insert(suite: Suite, item, index: Optional[int]) -> None:
        if index is not None and 0 <= index <= len(suite.items):
            suite.items.insert(index, item)
        else:
            suite.items.append(item)

    def add_prompt_item(
        self, suite_id: str, content: str = "", name: str = "", index: Optional[int] = None
    ) -> Optional[PromptItem]:
        suite = self._suites.get(suite_id)
        if suite is None:
            return None
        item = PromptItem(id=new_id("item"), name=name or "", content=content or "")
        self._insert(suite, item, index)
        self._save(suite)
        logger.debug("Prompt item added", suite_id=suite_id, item_id=item.id)
        return item

    def add_variable_item(self, suite_id: str, variable_id: str, index: Optional[int] = None) -> Optional[VariableItem]:
        """Add a variable reference. Returns None if the variable is already in the suite."""
        suite = self._suites.get(suite_id)
        if suite is None:
            return None
        if any(isinstance(item, VariableItem) and item.id == variable_id for item in suite.items):
            logger.warning("Variable already in suite", suite_id=suite_id, variable_id=variable_id)
            return None

        item = VariableItem(id=variable_id)
        self._insert(suite, item, index)
        self._save(suite)
        logger.debug("Variable item added", suite_id=suite_id, variable_id=variable_id)
        return item

    def add_chat_content_item(
        self,
        suite_id: str,
        name: str = "",
        range_config: Optional[RangeConfig] = None,
        exclude_user: bool = False,
        regex_config: Optional[RegexConfig] = None,
        index: Optional[int] = None,
    ) -> Optional[ChatContentItem]:
        suite = self._suites.get(suite_id)
        if suite is None:
            return None
        item = ChatContentItem(
            id=new_id("item"),
            name=name or "",
            range_config=range_config or RangeConfig(type="latest", count=20),
            exclude_user=exclude_user,
            regex_config=regex_config or RegexConfig(),
        )
        self._insert(suite, item, index)
        self._save(suite)
        logger.debug("Chat content item added", suite_id=suite_id, item_id=item.id)
        return item

    def add_char_prompt_item(
        self,
        suite_id: str,
        char_id: str,
        sub_type: str,
        label: str = "",
        entry_uid: Optional[int] = None,
        index: Optional[int] = None,
    ) -> Optional[CharPromptItem]:
        """
        Add a character-bound item.

        One item per (char_id, sub_type) for the fixed subtypes; worldbook
        items are unique per entry_uid.
        """
        suite = self._suites.get(suite_id)
        if suite is None:
            return None

        for existing in suite.items:
            if not isinstance(existing, CharPromptItem) or existing.char_id != char_id:
                continue
            if sub_type in FIXED_CHAR_SUBTYPES and existing.sub_type == sub_type:
                logger.warning("Character item already exists", suite_id=suite_id, char_id=char_id, sub_type=sub_type)
                return None
            if sub_type == "worldbook" and existing.sub_type == "worldbook" and existing.entry_uid == entry_uid:
                logger.warning("Worldbook item already exists", suite_id=suite_id, char_id=char_id, entry_uid=entry_uid)
                return None

        item = CharPromptItem(
            id=new_id("item"),
            char_id=char_id,
            sub_type=sub_type,
            label=label or f"[{sub_type}]",
            entry_uid=entry_uid,
        )
        self._insert(suite, item, index)
        self._save(suite)
        logger.debug("Character item added", suite_id=suite_id, char_id=char_id, sub_type=sub_type)
        return item

    def _find(self, suite_id: str, item_id: str, item_type: type):
        suite = self._suites.get(suite_id)
        if suite is None:
            return None, None
        for item in suite.items:
            if isinstance(item, item_type) and item.id == item_id:
                return suite, item
        return suite, None

    def _apply_updates(self, suite_id: str, item_id: str, item_type: type, allowed, updates: Dict[str, Any]) -> bool:
        suite, item = self._find(suite_id, item_id, item_type)
        if item is None:
            return False
        for field_name, value in updates.items():
            if field_name in allowed and value is not None:
                setattr(item, field_name, value)
        self._save(suite)
        logger.debug("Item updated", suite_id=suite_id, item_id=item_id, fields=sorted(updates))
        return True

    def update_prompt_item(self, suite_id: str, item_id: str, **updates: Any) -> bool:
        return self._apply_updates(suite_id, item_id, PromptItem, ("name", "content", "enabled"), updates)

    def update_variable_item(self, suite_id: str, variable_id: str, **updates: Any) -> bool:
        return self._apply_updates(suite_id, variable_id, VariableItem, ("enabled",), updates)

    def update_chat_content_item(self, suite_id: str, item_id: str, **updates: Any) -> bool:
        allowed = ("name", "enabled", "range_config", "exclude_user", "regex_config")
        return self._apply_updates(suite_id, item_id, ChatContentItem, allowed, updates)

    def update_char_prompt_item(self, suite_id: str, item_id: str, **updates: Any) -> bool:
        return self._apply_updates(suite_id, item_id, CharPromptItem, ("enabled",), updates)

    def remove_item(self, suite_id: str, item_id: str) -> bool:
        suite = self._suites.get(suite_id)
        if suite is None:
            return False
        item = suite.find_item(item_id)
        if item is None:
            return False
        suite.items.remove(item)
        self._save(suite)
        logger.debug("Item removed", suite_id=suite_id, item_id=item_id)
        return True

    def reorder_items(self, suite_id: str, item_ids: List[str]) -> OperationResult:
        """Reorder items by id. Unknown ids are dropped; any resulting count mismatch is rejected."""
        suite = self._suites.get(suite_id)
        if suite is None:
            return OperationResult.fail("Suite not found")

        by_id = {item.id: item for item in suite.items}
        new_items = []
        for item_id in item_ids:
            item = by_id.pop(item_id, None)
            if item is not None:
                new_items.append(item)

        if len(new_items) != len(suite.items):
            logger.warning("Reorder count mismatch", suite_id=suite_id, expected=len(suite.items), got=len(new_items))
            return OperationResult.fail("Item order does not match the suite's items")

        suite.items = new_items
        self._save(suite)
        logger.debug("Items reordered", suite_id=suite_id)
        return OperationResult.ok()

    # ==================== Queries ====================

    def get_visible_content_items(self, suite_id: str) -> List[ContentItem]:
        """Enabled prompt and chat-content items, in suite order."""
        suite = self._suites.get(suite_id)
        if suite is None:
            return []
        return [
            item
            for item in suite.items
            if isinstance(item, (PromptItem, ChatContentItem)) and item.enabled
        ]

    def get_enabled_variable_ids(self, suite_id: str) -> List[str]:
        suite = self._suites.get(suite_id)
        if suite is None:
            return []
        return [item.id for item in suite.items if isinstance(item, VariableItem) and item.enabled]

    def get_enabled_suites(self) -> List[Suite]:
        return [suite for suite in self._suites.values() if suite.enabled]

    def remove_variable_from_all_suites(self, variable_id: str) -> int:
        """Drop every reference to a variable. Returns the number of suites changed."""
        changed = 0
        for suite in self._suites.values():
            kept = [item for item in suite.items if not (isinstance(item, VariableItem) and item.id == variable_id)]
            if len(kept) != len(suite.items):
                suite.items = kept
                self._save(suite)
                changed += 1
        logger.info("Variable removed from suites", variable_id=variable_id, suites=changed)
        return changed
