"""
Prompt fragments for suite analysis runs.

The tag instructions are appended after the resolved suite prompt and tell the
model which [Tag]...[/Tag] spans to produce. The floor line template renders
conversation floors pulled in by chat-content items and the floor macro.
"""

TAG_INSTRUCTIONS_HEADER = "Please format your output as follows:"

# {tag} is the bare tag name, {mode_hint} comes from TAG_MODE_HINTS
TAG_INSTRUCTION_LINE = "[{tag}]Your {tag} content {mode_hint}[/{tag}]"

TAG_MODE_HINTS = {
    "stack": "(multiple allowed)",
    "replace": "(single)",
}

FLOOR_LINE_TEMPLATE = "[#{floor}] {sender}: {text}"

EMPTY_PREVIEW_TEXT = "(no floors selected)"
