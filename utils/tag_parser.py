"""
Tag parser for analysis responses.

The model is asked to wrap each variable's output as [Tag]content[/Tag].
Parsing tolerates case differences, surrounding prose, any tag order, and
unclosed spans (which run to the next known tag, any closing tag or the
end of the text).
"""

import re
from typing import Iterable, List, Optional, Sequence

from prompts import TAG_INSTRUCTIONS_HEADER, TAG_INSTRUCTION_LINE, TAG_MODE_HINTS
from schemas import CompletenessReport, ParsedTag, VariableDefinition

_ANY_OPEN_TAG = re.compile(r"\[([^\[\]/]+)\]")


def tag_name(tag: str) -> str:
    """Strip one pair of surrounding brackets: "[Summary]" -> "Summary"."""
    tag = tag.strip()
    if tag.startswith("["):
        tag = tag[1:]
    if tag.endswith("]"):
        tag = tag[:-1]
    return tag


def _closed_pattern(name: str) -> "re.Pattern[str]":
    escaped = re.escape(name)
    return re.compile(rf"\[{escaped}\](.*?)\[/{escaped}\]", re.IGNORECASE | re.DOTALL)


def _open_pattern(name: str, all_names: Sequence[str]) -> "re.Pattern[str]":
    escaped = re.escape(name)
    known = "|".join(re.escape(n) for n in all_names)
    return re.compile(
        rf"\[{escaped}\](.*?)(?=\[(?:{known})\]|\[/[^\[\]]*\]|\Z)",
        re.IGNORECASE | re.DOTALL,
    )


def extract_content(response: str, name: str, all_names: Sequence[str]) -> Optional[str]:
    """
    Extract the content of one tag.

    Closed spans win; several closed spans of the same tag are joined by a
    blank line. Without any closed span, open spans are tried.
    """
    matches = _closed_pattern(name).findall(response)
    if not matches:
        matches = _open_pattern(name, all_names).findall(response)
    if not matches:
        return None
    return "\n\n".join(m.strip() for m in matches).strip()


def parse(response: Optional[str], variables: Sequence[VariableDefinition]) -> List[ParsedTag]:
    """
    Parse a model response into one result per variable that produced content.

    Args:
        response: Raw model text
        variables: Enabled variable definitions, in suite order

    Returns:
        ParsedTag list in variable order; blank matches are dropped
    """
    if not response or not variables:
        return []

    names = [tag_name(v.tag) for v in variables]
    results = []
    for variable, name in zip(variables, names):
        content = extract_content(response, name, names)
        if content:
            results.append(ParsedTag(tag=variable.tag, content=content, variable_id=variable.id))
    return results


def generate_tag_instructions(variables: Sequence[VariableDefinition]) -> str:
    """Format instructions listing every tag in variable order."""
    if not variables:
        return ""
    lines = [TAG_INSTRUCTIONS_HEADER]
    for variable in variables:
        name = tag_name(variable.tag)
        lines.append(TAG_INSTRUCTION_LINE.format(tag=name, mode_hint=TAG_MODE_HINTS[variable.mode]))
    return "\n".join(lines)


def generate_tag_example(variables: Sequence[VariableDefinition]) -> str:
    """Compact example, e.g. "[Summary]...[/Summary][Mood]...[/Mood]"."""
    return "".join(f"[{tag_name(v.tag)}]...[/{tag_name(v.tag)}]" for v in variables)


def has_tag(response: str, tag: str) -> bool:
    return re.search(rf"\[{re.escape(tag_name(tag))}\]", response, re.IGNORECASE) is not None


def find_all_tags(response: str) -> List[str]:
    """Distinct opening tag names in order of first appearance."""
    seen: List[str] = []
    for match in _ANY_OPEN_TAG.finditer(response or ""):
        if match.group(1) not in seen:
            seen.append(match.group(1))
    return seen


def check_completeness(results: Iterable[ParsedTag], variables: Sequence[VariableDefinition]) -> CompletenessReport:
    parsed = {r.tag for r in results}
    missing = [v.tag for v in variables if v.tag not in parsed]
    return CompletenessReport(complete=not missing, missing=missing)
