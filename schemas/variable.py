"""Variable definition and value schemas."""

from typing import List, Literal, Optional, Union

from pydantic import Field

from schemas.base import CamelModel, now_ms

VariableMode = Literal["stack", "replace"]


class VariableDefinition(CamelModel):
    """A named variable and the tag the model must wrap its output in."""

    id: str = Field(..., description="Variable ID")
    name: str = Field(..., min_length=1, description="Macro name, used as {{name}}")
    tag: str = Field(..., min_length=1, description="Output tag, e.g. Summary for [Summary]...[/Summary]")
    mode: VariableMode = Field(..., description="stack appends entries, replace keeps one value plus history")
    created_at: int = Field(default_factory=now_ms, description="Creation time (ms)")
    updated_at: int = Field(default_factory=now_ms, description="Last update time (ms)")


class VariableEntry(CamelModel):
    """One piece of content with the floors it was produced from."""

    id: int = Field(..., description="Entry ID, monotonic per variable")
    content: str = Field("", description="Entry content")
    floor_range: str = Field("", description='Floors the content covers, e.g. "56-65" or "65"')
    timestamp: int = Field(default_factory=now_ms, description="Creation time (ms)")
    hidden: bool = Field(False, description="Hidden entries are skipped by macros")


class StackValue(CamelModel):
    """Append-only list of entries. List order is display and reference order."""

    entries: List[VariableEntry] = Field(default_factory=list)
    next_entry_id: int = Field(1, ge=1)

    def visible_entries(self) -> List[VariableEntry]:
        return [entry for entry in self.entries if not entry.hidden]


class ReplaceValue(CamelModel):
    """
    Single current value plus superseded history.

    history_index == -1 means the current value is displayed; otherwise it
    addresses history[history_index].
    """

    current_value: str = ""
    current_floor_range: str = ""
    history: List[VariableEntry] = Field(default_factory=list)
    history_index: int = Field(-1, ge=-1)


VariableValue = Union[StackValue, ReplaceValue]


class DisplayValue(CamelModel):
    """What a replace variable currently shows."""

    content: str = ""
    floor_range: str = ""
    is_history: bool = False


def empty_value(mode: VariableMode) -> VariableValue:
    if mode == "stack":
        return StackValue()
    return ReplaceValue()


def value_from_record(mode: VariableMode, data: Optional[dict]) -> VariableValue:
    """Decode a persisted blob using the owning definition's mode."""
    if not data:
        return empty_value(mode)
    if mode == "stack":
        return StackValue.model_validate(data)
    return ReplaceValue.model_validate(data)
