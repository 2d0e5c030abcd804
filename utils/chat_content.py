"""
Chat content processor.

Turns a chat-content item into text: select floors by range config, drop
user turns if asked, run each floor through the regex chain, and render the
survivors as "[#N] Sender: text" lines.

Regex chain order: the item's custom scripts, then the host tiers
global -> preset -> scoped, then re-ordered by script_order, then filtered by
disabled_scripts / enabled_scripts.
"""

import re
from typing import Dict, List, Optional, Tuple

from config.settings import settings
from core import get_logger
from core.interfaces import RegexScriptSource
from prompts import EMPTY_PREVIEW_TEXT
from schemas import ChatContentItem, ChatMessage, RangeConfig, RangeValidation, RegexConfig, RegexScript
from utils.macro_processor import format_floor

logger = get_logger(__name__)

HOST_TIERS = ("global", "preset", "scoped")

_SLASH_PATTERN = re.compile(r"^/(.*)/([a-z]*)$", re.DOTALL)
_JS_GROUP_REF = re.compile(r"\$(\d+|&|\$)")


# ==================== Floor selection ====================


def calculate_floors(
    config: RangeConfig,
    chat_length: int,
    exclude_user: bool = False,
    messages: Optional[List[ChatMessage]] = None,
) -> List[int]:
    """
    Compute the selected 1-based floors.

    Args:
        config: Range configuration
        chat_length: Number of floors to select from
        exclude_user: Drop floors spoken by the user (needs messages)
        messages: Conversation, used for the user filter

    Returns:
        Ascending floor numbers
    """
    if chat_length <= 0:
        return []

    kind = config.type
    if kind == "fixed":
        start = max(1, config.start or 1)
        end = min(chat_length, config.end or chat_length)
        floors = list(range(start, end + 1))
    elif kind == "latest":
        count = min(config.count or settings.DEFAULT_CHAT_CONTENT_COUNT, chat_length)
        floors = list(range(max(1, chat_length - count + 1), chat_length + 1))
    elif kind == "relative":
        skip = config.skip or 0
        count = config.count or settings.DEFAULT_CHAT_CONTENT_COUNT
        end = chat_length - skip
        floors = list(range(max(1, end - count + 1), end + 1)) if end >= 1 else []
    elif kind == "interval":
        start = max(1, config.start or 1)
        step = max(1, config.step or 5)
        floors = list(range(start, chat_length + 1, step))
    elif kind == "percentage":
        percent = max(0.0, min(100.0, config.percent or 30))
        count = max(1, round(chat_length * percent / 100))
        if (config.position or "end") == "start":
            floors = list(range(1, min(count, chat_length) + 1))
        else:
            floors = list(range(max(1, chat_length - count + 1), chat_length + 1))
    elif kind == "exclude":
        exclude_start = config.exclude_start or 1
        exclude_end = config.exclude_end or exclude_start
        floors = [f for f in range(1, chat_length + 1) if f < exclude_start or f > exclude_end]
    else:
        logger.warning("Unknown range type", range_type=kind)
        return []

    if exclude_user and messages:
        floors = [f for f in floors if f <= len(messages) and not messages[f - 1].is_user]
    return floors


def validate_range(config: RangeConfig, chat_length: int) -> RangeValidation:
    """Check a range configuration against the current chat length."""
    if chat_length <= 0:
        return RangeValidation(valid=False, error="The conversation has no messages")

    kind = config.type
    if kind == "fixed":
        start = config.start or 1
        end = config.end or chat_length
        if start < 1:
            return RangeValidation(valid=False, error="Start floor must be at least 1")
        if start > chat_length or end > chat_length:
            return RangeValidation(valid=False, error=f"Floor out of range, latest floor is {chat_length}")
        if start > end:
            return RangeValidation(valid=False, error="Start floor cannot be after end floor")
    elif kind == "latest":
        if config.count is not None and config.count <= 0:
            return RangeValidation(valid=False, error="Count must be greater than 0")
    elif kind == "relative":
        skip = config.skip or 0
        if skip < 0:
            return RangeValidation(valid=False, error="Skip cannot be negative")
        if config.count is not None and config.count <= 0:
            return RangeValidation(valid=False, error="Count must be greater than 0")
        if skip >= chat_length:
            return RangeValidation(valid=False, error=f"Skip out of range, latest floor is {chat_length}")
    elif kind == "interval":
        start = config.start or 1
        if start < 1:
            return RangeValidation(valid=False, error="Start floor must be at least 1")
        if start > chat_length:
            return RangeValidation(valid=False, error=f"Start floor out of range, latest floor is {chat_length}")
        if config.step is not None and config.step <= 0:
            return RangeValidation(valid=False, error="Step must be greater than 0")
    elif kind == "percentage":
        percent = config.percent if config.percent is not None else 30
        if percent <= 0 or percent > 100:
            return RangeValidation(valid=False, error="Percent must be between 1 and 100")
    elif kind == "exclude":
        exclude_start = config.exclude_start or 1
        exclude_end = config.exclude_end or exclude_start
        if exclude_start < 1:
            return RangeValidation(valid=False, error="Exclude start must be at least 1")
        if exclude_start > exclude_end:
            return RangeValidation(valid=False, error="Exclude start cannot be after exclude end")
        if exclude_start == 1 and exclude_end >= chat_length:
            return RangeValidation(valid=False, error="Cannot exclude every floor")
    else:
        return RangeValidation(valid=False, error="Unknown range type")
    return RangeValidation(valid=True)


def format_preview(floors: List[int]) -> str:
    """Short human-readable description of a floor selection."""
    if not floors:
        return EMPTY_PREVIEW_TEXT
    if len(floors) <= 10:
        return "Floors " + ", ".join(str(f) for f in floors)
    lo, hi = min(floors), max(floors)
    if hi - lo + 1 == len(floors):
        return f"Floors {lo}-{hi} ({len(floors)} total)"
    return f"{len(floors)} floors within {lo}-{hi}"


def format_floor_range(floors: List[int]) -> str:
    """Format floors as "min-max", or a single number when min == max."""
    lo, hi = min(floors), max(floors)
    return str(lo) if lo == hi else f"{lo}-{hi}"


# ==================== Regex scripts ====================


def compile_script_regex(find_regex: str) -> Tuple[Optional["re.Pattern[str]"], bool]:
    """
    Compile a find pattern given as "/pattern/flags" or a bare pattern.

    Returns:
        (pattern, replace_all); pattern is None when it does not compile
    """
    flags = 0
    replace_all = True
    source = find_regex
    match = _SLASH_PATTERN.match(find_regex)
    if match:
        source, flag_text = match.group(1), match.group(2)
        replace_all = "g" in flag_text
        if "i" in flag_text:
            flags |= re.IGNORECASE
        if "m" in flag_text:
            flags |= re.MULTILINE
        if "s" in flag_text:
            flags |= re.DOTALL
    try:
        return re.compile(source, flags), replace_all
    except re.error as e:
        logger.warning("Invalid regex script pattern", pattern=find_regex, error=str(e))
        return None, replace_all


def convert_replacement(replacement: str) -> str:
    """Translate $1 / $& / $$ replacement syntax to Python's."""
    escaped = replacement.replace("\\", "\\\\")

    def _sub(match: "re.Match[str]") -> str:
        ref = match.group(1)
        if ref == "&":
            return r"\g<0>"
        if ref == "$":
            return "$"
        return rf"\g<{ref}>"

    return _JS_GROUP_REF.sub(_sub, escaped)


def run_script(script: RegexScript, text: str) -> str:
    """Apply one script. A broken script leaves the text unchanged."""
    if not script.find_regex or not text:
        return text
    pattern, replace_all = compile_script_regex(script.find_regex)
    if pattern is None:
        return text
    try:
        result = pattern.sub(convert_replacement(script.replace_string), text, count=0 if replace_all else 1)
    except (re.error, IndexError) as e:
        logger.warning("Regex script failed", script=script.script_name or script.id, error=str(e))
        return text
    for trim in script.trim_strings:
        if trim:
            result = result.replace(trim, "")
    return result


class ChatContentProcessor:
    """Builds the text of chat-content items."""

    def __init__(self, script_source: Optional[RegexScriptSource] = None):
        self.script_source = script_source

    def _host_scripts(self) -> Dict[str, List[RegexScript]]:
        if self.script_source is None:
            return {}
        scripts = self.script_source.load_scripts()
        return {
            tier: [
                s.model_copy(update={"source": tier})
                for s in scripts.get(tier, [])
                if s.only_format_prompt and not s.disabled
            ]
            for tier in HOST_TIERS
        }

    def ordered_scripts(self, config: RegexConfig) -> List[RegexScript]:
        """The scripts that will run for this config, in execution order."""
        host = self._host_scripts()
        scripts = [s for s in config.custom_scripts if not s.disabled]
        for tier in HOST_TIERS:
            scripts.extend(host.get(tier, []))

        if config.script_order:
            by_key: Dict[str, RegexScript] = {}
            for script in scripts:
                if script.key and script.key not in by_key:
                    by_key[script.key] = script
            ordered = [by_key.pop(key) for key in config.script_order if key in by_key]
            ordered.extend(by_key.values())
            scripts = ordered

        enabled = []
        for script in scripts:
            if script.key in config.disabled_scripts:
                continue
            if config.enabled_scripts and script.key not in config.enabled_scripts:
                continue
            enabled.append(script)
        return enabled

    def apply_regex(self, content: str, config: Optional[RegexConfig]) -> str:
        if not content or config is None or not config.use_prompt_only:
            return content
        for script in self.ordered_scripts(config):
            content = run_script(script, content)
        return content

    def fetch_content(
        self, floors: List[int], messages: List[ChatMessage], regex_config: Optional[RegexConfig] = None
    ) -> Tuple[str, List[int]]:
        """
        Render floors, applying the regex chain per floor.

        Returns:
            (text, floors that produced non-blank text)
        """
        lines = []
        used = []
        for floor in floors:
            if floor < 1 or floor > len(messages):
                continue
            message = messages[floor - 1]
            if not message.text:
                continue
            text = self.apply_regex(message.text, regex_config)
            if not text.strip():
                continue
            lines.append(format_floor(floor, message, text))
            used.append(floor)
        return "\n\n".join(lines), used

    def get_item_content(self, item: ChatContentItem, messages: List[ChatMessage]) -> Tuple[str, List[int]]:
        """
        Text of one chat-content item over the given conversation.

        Returns:
            (text, every selected floor); no floors when the item produced no text
        """
        if not messages:
            return "", []
        floors = calculate_floors(item.range_config, len(messages), item.exclude_user, messages)
        if not floors:
            return "", []
        text, _ = self.fetch_content(floors, messages, item.regex_config)
        if not text:
            return "", []
        return text, floors
