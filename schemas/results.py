"""
Result schemas.

Validation outcomes (duplicate names, unknown ids, bad permutations) are
returned as OperationResult values rather than raised.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from schemas.variable import VariableDefinition, VariableEntry


class OperationResult(BaseModel):
    success: bool = True
    error: Optional[str] = None

    @classmethod
    def ok(cls, **kwargs) -> "OperationResult":
        return cls(success=True, **kwargs)

    @classmethod
    def fail(cls, error: str, **kwargs) -> "OperationResult":
        return cls(success=False, error=error, **kwargs)


class VariableResult(OperationResult):
    variable: Optional[VariableDefinition] = None


class EntryResult(OperationResult):
    entry: Optional[VariableEntry] = None
    hidden: Optional[bool] = None


class HistoryResult(OperationResult):
    """Outcome of history navigation; index is the 1-based display position."""

    index: Optional[int] = None
    total: int = 0


class RangeValidation(BaseModel):
    valid: bool = True
    error: Optional[str] = None


class ParsedTag(BaseModel):
    """Content extracted from one [Tag]...[/Tag] span."""

    tag: str
    content: str
    variable_id: Optional[str] = None


class CompletenessReport(BaseModel):
    complete: bool = True
    missing: List[str] = Field(default_factory=list, description="Tags with no match")


class AssignmentReport(BaseModel):
    assigned: int = 0
    failed: List[str] = Field(default_factory=list, description="Tags that could not be assigned")


class BuiltPrompt(BaseModel):
    prompt: str = ""
    floor_range: str = ""


class AnalysisResult(OperationResult):
    """Outcome of one analyzer run."""

    status: Literal["success", "failed", "aborted"] = "success"
    results: List[ParsedTag] = Field(default_factory=list)
    assigned: int = 0
    floor_range: Optional[str] = None
    raw_response: Optional[str] = None


class ApplyResult(OperationResult):
    applied: int = 0


class InheritResult(OperationResult):
    inherited: int = 0
    skipped: int = 0
