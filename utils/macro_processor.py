"""
Macro processor.

Expands {{name}} and {{name@spec}} references in prompt text:

    {{Summary}}           whole value of variable Summary
    {{Summary@1-3,end}}   stack entries 1..3 plus the last one
    {{floors@10-end}}     raw conversation floors 10..last
    {{floors@{{LastMessageId}}}}  nested macros resolve innermost first

spec is a comma-separated list of a, a-b, a-end, end-b or end. Positions are
1-based and clamped to [1, length]; inverted pairs are swapped. Stack ranges
index visible entries only. Replace variables ignore the range and resolve
to their current display value. Unknown names are left untouched.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from config.settings import settings
from core import get_logger
from memory.variable_store import BUILTIN_MACRO_NAMES, VariableStore, display_value_of
from prompts import FLOOR_LINE_TEMPLATE
from schemas import ChatMessage, ReplaceValue, StackValue, VariableValue

logger = get_logger(__name__)

Bound = Union[int, str]
_TOKEN = re.compile(r"^(\d+|end)(?:\s*-\s*(\d+|end))?$", re.IGNORECASE)


@dataclass
class MacroContext:
    """What a macro expansion can see: the chat id and its messages."""

    chat_id: Optional[str]
    messages: List[ChatMessage] = field(default_factory=list)

    @property
    def last_message_id(self) -> int:
        return len(self.messages)


def parse_ranges(spec: Optional[str]) -> List[Tuple[Bound, Bound]]:
    """
    Parse a range spec into (start, end) pairs. Invalid tokens are skipped.

    >>> parse_ranges("1-3, 5, end-2")
    [(1, 3), (5, 5), ('end', 2)]
    """
    if not spec:
        return []
    ranges = []
    for token in spec.split(","):
        token = token.strip().lstrip("@").strip()
        match = _TOKEN.match(token)
        if not match:
            if token:
                logger.debug("Ignoring range token", token=token)
            continue
        start = _bound(match.group(1))
        end = _bound(match.group(2)) if match.group(2) else start
        ranges.append((start, end))
    return ranges


def _bound(raw: str) -> Bound:
    return "end" if raw.lower() == "end" else int(raw)


def clamp_range(start: Bound, end: Bound, length: int) -> Optional[Tuple[int, int]]:
    """Resolve "end", clamp to [1, length] and order the pair. None when length is 0."""
    if length <= 0:
        return None
    lo = length if start == "end" else start
    hi = length if end == "end" else end
    lo = max(1, min(lo, length))
    hi = max(1, min(hi, length))
    if lo > hi:
        lo, hi = hi, lo
    return lo, hi


def select_positions(ranges: List[Tuple[Bound, Bound]], length: int) -> List[int]:
    """1-based positions selected by ranges, in range order."""
    positions = []
    for start, end in ranges:
        bounds = clamp_range(start, end, length)
        if bounds is not None:
            positions.extend(range(bounds[0], bounds[1] + 1))
    return positions


def format_floor(floor: int, message: ChatMessage, text: Optional[str] = None) -> str:
    return FLOOR_LINE_TEMPLATE.format(
        floor=floor,
        sender=message.sender,
        text=message.text if text is None else text,
    )


def _find_close(text: str, start: int) -> int:
    """Index of the "}}" closing the "{{" at start, or -1."""
    depth = 0
    i = start
    while i < len(text) - 1:
        pair = text[i:i + 2]
        if pair == "{{":
            depth += 1
            i += 2
        elif pair == "}}":
            depth -= 1
            if depth == 0:
                return i
            i += 2
        else:
            i += 1
    return -1


class MacroProcessor:
    """
    Expands macros against the variable store and the conversation.

    With cached_only=True values are read from the store's memory cache and
    never loaded, which is what synchronous host macro handlers need.
    """

    def __init__(self, store: VariableStore, cached_only: bool = False, max_depth: Optional[int] = None):
        self.store = store
        self.cached_only = cached_only
        self.max_depth = max_depth or settings.MACRO_MAX_DEPTH
        self.floor_macro_name = settings.CHAT_FLOOR_MACRO_NAME

    def process(self, template: Optional[str], context: MacroContext) -> str:
        if not template:
            return ""
        return self._expand(template, context, depth=1)

    def _expand(self, text: str, context: MacroContext, depth: int) -> str:
        parts = []
        i = 0
        while i < len(text):
            start = text.find("{{", i)
            if start == -1:
                parts.append(text[i:])
                break
            end = _find_close(text, start)
            if end == -1:
                parts.append(text[i:start + 2])
                i = start + 2
                continue

            parts.append(text[i:start])
            body = text[start + 2:end]
            if depth < self.max_depth and "{{" in body:
                body = self._expand(body, context, depth + 1)
            parts.append(self.resolve(body, context))
            i = end + 2
        return "".join(parts)

    def resolve(self, body: str, context: MacroContext) -> str:
        """Resolve one macro body (the text between the braces)."""
        name, _, spec = body.partition("@")
        name = name.strip()

        if name in BUILTIN_MACRO_NAMES and not spec:
            return str(context.last_message_id)
        if name == self.floor_macro_name:
            return self.render_floors(spec, context)

        definition = self.store.get_definition_by_name(name)
        if definition is None:
            return "{{" + body + "}}"
        return self.render_variable(definition.id, spec, context)

    def render_variable(self, variable_id: str, spec: str, context: MacroContext) -> str:
        if self.cached_only:
            value = self.store.get_cached_value(variable_id, context.chat_id)
        else:
            value = self.store.get_value(variable_id, context.chat_id)
        if value is None:
            return ""
        return render_with_ranges(value, spec)

    def render_floors(self, spec: str, context: MacroContext) -> str:
        """Raw floors by absolute index. No range selects nothing."""
        ranges = parse_ranges(spec)
        if not ranges or not context.messages:
            return ""
        lines = []
        for floor in select_positions(ranges, len(context.messages)):
            lines.append(format_floor(floor, context.messages[floor - 1]))
        return "\n\n".join(lines)


def render_with_ranges(value: VariableValue, spec: Optional[str]) -> str:
    """Render a value, applying a range spec to stack values."""
    if isinstance(value, StackValue):
        visible = value.visible_entries()
        ranges = parse_ranges(spec)
        if not ranges:
            return "\n\n".join(entry.content for entry in visible)
        positions = select_positions(ranges, len(visible))
        return "\n\n".join(visible[p - 1].content for p in positions)
    if isinstance(value, ReplaceValue):
        return display_value_of(value).content
    raise TypeError(f"Unknown variable value type: {type(value).__name__}")
