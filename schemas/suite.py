"""Suite, item and trigger schemas."""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import Field

from schemas.base import CamelModel, now_ms

TriggerType = Literal["manual", "interval", "keyword"]
RangeType = Literal["fixed", "latest", "relative", "interval", "percentage", "exclude"]
CharPromptSubType = Literal["char-desc", "char-personality", "char-scenario", "worldbook"]

FIXED_CHAR_SUBTYPES = ("char-desc", "char-personality", "char-scenario")


class TriggerConfig(CamelModel):
    """When a suite is analyzed automatically."""

    type: TriggerType = "manual"
    interval: Optional[int] = Field(None, ge=1, description="Message count (interval triggers)")
    keywords: List[str] = Field(default_factory=list, description="Keywords (keyword triggers)")


class RangeConfig(CamelModel):
    """
    Floor selection for a chat-content item.

    Only the fields relevant to ``type`` are read:
    fixed(start, end), latest(count), relative(skip, count),
    interval(start, step), percentage(percent, position),
    exclude(exclude_start, exclude_end).
    """

    type: RangeType = "latest"
    start: Optional[int] = None
    end: Optional[int] = None
    count: Optional[int] = None
    skip: Optional[int] = None
    step: Optional[int] = None
    percent: Optional[float] = None
    position: Optional[Literal["start", "end"]] = None
    exclude_start: Optional[int] = None
    exclude_end: Optional[int] = None


class RegexScript(CamelModel):
    """A find/replace rule applied to each selected floor."""

    id: str = ""
    script_name: str = ""
    find_regex: str = Field("", description="Pattern, optionally in /pattern/flags form")
    replace_string: str = ""
    trim_strings: List[str] = Field(default_factory=list)
    only_format_prompt: bool = Field(True, alias="only_format_prompt")
    disabled: bool = False
    source: Literal["custom", "global", "preset", "scoped"] = "custom"

    @property
    def key(self) -> str:
        return self.id or self.script_name


class RegexConfig(CamelModel):
    use_prompt_only: bool = True
    enabled_scripts: List[str] = Field(default_factory=list)
    disabled_scripts: List[str] = Field(default_factory=list)
    custom_scripts: List[RegexScript] = Field(default_factory=list)
    script_order: List[str] = Field(default_factory=list)


# ==================== Items ====================


class PromptItem(CamelModel):
    """Literal instruction text, may contain macros."""

    type: Literal["prompt"] = "prompt"
    id: str
    name: str = ""
    content: str = ""
    enabled: bool = True


class ChatContentItem(CamelModel):
    """Selector over conversation floors."""

    type: Literal["chat-content"] = "chat-content"
    id: str
    name: str = ""
    enabled: bool = True
    range_config: RangeConfig = Field(default_factory=lambda: RangeConfig(type="latest", count=20))
    exclude_user: bool = False
    regex_config: RegexConfig = Field(default_factory=RegexConfig)


class VariableItem(CamelModel):
    """Requests the referenced variable's tag from the model. id is the variable definition id."""

    type: Literal["variable"] = "variable"
    id: str
    enabled: bool = True


class CharPromptItem(CamelModel):
    """Reference to character-bound content."""

    type: Literal["char-prompt"] = "char-prompt"
    id: str
    char_id: str
    sub_type: CharPromptSubType
    label: str = ""
    entry_uid: Optional[int] = None
    enabled: bool = True


SuiteItem = Annotated[
    Union[PromptItem, ChatContentItem, VariableItem, CharPromptItem],
    Field(discriminator="type"),
]

ContentItem = Union[PromptItem, ChatContentItem]


class Suite(CamelModel):
    """Named, ordered collection of items plus one trigger configuration."""

    id: str
    name: str = "New suite"
    enabled: bool = True
    trigger: TriggerConfig = Field(default_factory=TriggerConfig)
    items: List[SuiteItem] = Field(default_factory=list)
    use_snapshot_mode: Optional[bool] = Field(
        None, description="Per-suite snapshot preference; None falls back to the queue default"
    )
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)

    def find_item(self, item_id: str) -> Optional[Union[PromptItem, ChatContentItem, VariableItem, CharPromptItem]]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None
