"""
Prompts module - LLM prompt fragments.

Import prompts directly:
    from prompts import TAG_INSTRUCTIONS_HEADER, FLOOR_LINE_TEMPLATE

Or import from specific modules:
    from prompts.analysis import TAG_MODE_HINTS
"""

from prompts.analysis import (
    TAG_INSTRUCTIONS_HEADER,
    TAG_INSTRUCTION_LINE,
    TAG_MODE_HINTS,
    FLOOR_LINE_TEMPLATE,
    EMPTY_PREVIEW_TEXT,
)

__all__ = [
    "TAG_INSTRUCTIONS_HEADER",
    "TAG_INSTRUCTION_LINE",
    "TAG_MODE_HINTS",
    "FLOOR_LINE_TEMPLATE",
    "EMPTY_PREVIEW_TEXT",
]
