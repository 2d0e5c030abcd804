"""
Pydantic schemas for type-safe data transfer.
"""

from schemas.base import CamelModel, new_id, now_ms
from schemas.variable import (
    VariableMode,
    VariableDefinition,
    VariableEntry,
    StackValue,
    ReplaceValue,
    VariableValue,
    DisplayValue,
    empty_value,
    value_from_record,
)
from schemas.suite import (
    TriggerConfig,
    RangeConfig,
    RegexScript,
    RegexConfig,
    PromptItem,
    ChatContentItem,
    VariableItem,
    CharPromptItem,
    SuiteItem,
    ContentItem,
    Suite,
)
from schemas.queue import QueueTask, SuiteQueueStatus
from schemas.chat import ChatMessage, ModelMessage, ModelResponse
from schemas.results import (
    OperationResult,
    VariableResult,
    EntryResult,
    HistoryResult,
    RangeValidation,
    ParsedTag,
    CompletenessReport,
    AssignmentReport,
    BuiltPrompt,
    AnalysisResult,
    ApplyResult,
    InheritResult,
)

__all__ = [
    "CamelModel",
    "new_id",
    "now_ms",
    "VariableMode",
    "VariableDefinition",
    "VariableEntry",
    "StackValue",
    "ReplaceValue",
    "VariableValue",
    "DisplayValue",
    "empty_value",
    "value_from_record",
    "TriggerConfig",
    "RangeConfig",
    "RegexScript",
    "RegexConfig",
    "PromptItem",
    "ChatContentItem",
    "VariableItem",
    "CharPromptItem",
    "SuiteItem",
    "ContentItem",
    "Suite",
    "QueueTask",
    "SuiteQueueStatus",
    "ChatMessage",
    "ModelMessage",
    "ModelResponse",
    "OperationResult",
    "VariableResult",
    "EntryResult",
    "HistoryResult",
    "RangeValidation",
    "ParsedTag",
    "CompletenessReport",
    "AssignmentReport",
    "BuiltPrompt",
    "AnalysisResult",
    "ApplyResult",
    "InheritResult",
]
