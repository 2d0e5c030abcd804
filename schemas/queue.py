"""Analysis queue schemas."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from schemas.base import CamelModel, now_ms

TaskStatus = Literal["pending", "processing", "paused"]
TaskOutcome = Literal["success", "failed", "aborted"]


class QueueTask(CamelModel):
    """One queued analysis run. Lives only in memory."""

    id: str = Field(..., description="Task ID")
    suite_id: str
    suite_name: str = ""
    status: TaskStatus = "pending"
    chat_length_snapshot: int = Field(0, ge=0, description="Chat length at enqueue time")
    chat_id_snapshot: Optional[str] = Field(None, description="Chat id at enqueue time")
    use_snapshot: bool = Field(True, description="Use chat_length_snapshot instead of the live length")
    trigger_type: str = "manual"
    created_at: int = Field(default_factory=now_ms)


class SuiteQueueStatus(BaseModel):
    """Where a suite currently sits in the queue."""

    status: Literal["idle", "processing", "pending", "paused"] = "idle"
    position: Optional[int] = Field(None, description="1-based position among pending tasks")
    task_id: Optional[str] = None
