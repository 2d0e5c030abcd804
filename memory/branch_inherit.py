"""
Branch inheritance - carry variable values into a branched conversation.

A branch made at floor N only keeps what was known by floor N:
    - stack: entries whose floor range ends at or before N
    - replace: the current value, if its floor range ends at or before N;
      history is not carried over
"""

import re
from typing import Iterable, Literal, Optional

from core import get_logger
from memory.variable_store import VariableStore
from schemas import InheritResult, ReplaceValue, StackValue, VariableValue

logger = get_logger(__name__)

InheritMode = Literal["all", "custom"]

_FLOOR_RANGE = re.compile(r"^\s*(\d+)\s*(?:-\s*(\d+)\s*)?$")


def floor_range_end(floor_range: Optional[str]) -> Optional[int]:
    """
    Last floor of a range string.

    >>> floor_range_end("56-65")
    65
    >>> floor_range_end("12")
    12
    """
    if not floor_range:
        return None
    match = _FLOOR_RANGE.match(floor_range)
    if not match:
        return None
    return int(match.group(2) or match.group(1))


def filter_stack_value(value: StackValue, branch_floor: int) -> StackValue:
    kept = []
    for entry in value.entries:
        end = floor_range_end(entry.floor_range)
        if end is not None and end <= branch_floor:
            kept.append(entry.model_copy())
    return StackValue(entries=kept, next_entry_id=value.next_entry_id)


def filter_replace_value(value: ReplaceValue, branch_floor: int) -> Optional[ReplaceValue]:
    if not value.current_value:
        return None
    end = floor_range_end(value.current_floor_range)
    if end is None or end > branch_floor:
        return None
    return ReplaceValue(current_value=value.current_value, current_floor_range=value.current_floor_range)


def inherit_variables(
    store: VariableStore,
    source_chat_id: str,
    target_chat_id: str,
    branch_floor: int,
    mode: InheritMode = "all",
    variable_ids: Optional[Iterable[str]] = None,
) -> InheritResult:
    """
    Copy values from source chat into target chat up to branch_floor.

    Args:
        store: Variable store
        source_chat_id: Chat the branch was made from
        target_chat_id: The new branch
        branch_floor: Last floor the branch shares with its source
        mode: "all" variables, or "custom" for only variable_ids
        variable_ids: Selection used by "custom" mode
    """
    if not source_chat_id or not target_chat_id:
        logger.warning("Inherit skipped, missing chat id")
        return InheritResult.fail("Missing chat id")
    if source_chat_id == target_chat_id:
        return InheritResult.fail("Source and target chat are the same")

    selected = set(variable_ids or [])
    source_values = store.get_chat_values(source_chat_id)
    if not source_values:
        logger.info("Source chat has no variable values", source_chat_id=source_chat_id)
        return InheritResult.ok()

    inherited = 0
    skipped = 0
    for variable_id, value in source_values.items():
        definition = store.get_definition(variable_id)
        if definition is None:
            logger.warning("Inherit skipped unknown variable", variable_id=variable_id)
            skipped += 1
            continue
        if mode == "custom" and variable_id not in selected:
            skipped += 1
            continue

        filtered: Optional[VariableValue]
        if isinstance(value, StackValue):
            filtered = filter_stack_value(value, branch_floor)
            if not filtered.entries:
                filtered = None
        else:
            filtered = filter_replace_value(value, branch_floor)

        if filtered is None:
            skipped += 1
            continue

        result = store.set_chat_value(variable_id, target_chat_id, filtered)
        if result.success:
            inherited += 1
        else:
            logger.warning("Inherit failed", variable=definition.name, error=result.error)
            skipped += 1

    logger.info(
        "Variables inherited",
        source_chat_id=source_chat_id,
        target_chat_id=target_chat_id,
        branch_floor=branch_floor,
        inherited=inherited,
        skipped=skipped,
    )
    return InheritResult.ok(inherited=inherited, skipped=skipped)
