"""Host chat and model call schemas."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """One floor of the host conversation."""

    text: str = Field("", description="Message text")
    is_user: bool = Field(False, description="True for the human speaker's turns")
    name: Optional[str] = Field(None, description="Display name of the speaker")

    @property
    def sender(self) -> str:
        if self.is_user:
            return "User"
        return self.name or "Assistant"


class ModelMessage(BaseModel):
    role: Literal["system", "user", "assistant"] = "user"
    content: str


class ModelResponse(BaseModel):
    """Text returned by the model-call collaborator."""

    text: str = ""
    model: Optional[str] = None
    input_tokens: int = Field(0, ge=0)
    output_tokens: int = Field(0, ge=0)


def as_chat_payload(messages: List[ModelMessage]) -> List[dict]:
    return [message.model_dump() for message in messages]
