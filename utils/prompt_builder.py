"""
Prompt construction for a suite.

Walks the suite's visible content items in order: prompt items are macro
expanded, chat-content items expand to their selected floors. The floor range
covers every floor selected by a chat-content item that produced text, even
floors a regex script blanked; with none it falls back to the conversation
length.
"""

from core import get_logger
from memory.suite_registry import SuiteRegistry
from schemas import BuiltPrompt, ChatContentItem, PromptItem
from utils.chat_content import ChatContentProcessor, format_floor_range
from utils.macro_processor import MacroContext, MacroProcessor

logger = get_logger(__name__)


class PromptBuilder:
    def __init__(self, registry: SuiteRegistry, macros: MacroProcessor, chat_content: ChatContentProcessor):
        self.registry = registry
        self.macros = macros
        self.chat_content = chat_content

    def build(self, suite_id: str, context: MacroContext) -> BuiltPrompt:
        """
        Resolve a suite into prompt text plus floor range.

        An empty prompt means the suite had no visible content.
        """
        items = self.registry.get_visible_content_items(suite_id)
        if not items:
            return BuiltPrompt()

        parts = []
        floors = set()
        for item in items:
            if isinstance(item, PromptItem):
                parts.append(self.macros.process(item.content, context))
            elif isinstance(item, ChatContentItem):
                text, selected = self.chat_content.get_item_content(item, context.messages)
                if text:
                    parts.append(text)
                    floors.update(selected)
            else:
                raise TypeError(f"Unexpected content item: {type(item).__name__}")

        floor_range = format_floor_range(sorted(floors)) if floors else str(context.last_message_id)
        prompt = "\n".join(parts)
        logger.debug("Prompt built", suite_id=suite_id, items=len(items), floor_range=floor_range, length=len(prompt))
        return BuiltPrompt(prompt=prompt, floor_range=floor_range)
