from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "tool"] = Field(description="Message role: user, assistant or tool")
    content: str = Field(default="", description="Message content")


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatMessage] = Field(description="Chat conversation history; the latest user message is answered")
    selected_model: Optional[str] = Field(
        default=None,
        alias="selectedModel",
        description="Model id from the catalog; unknown ids fall back to the default model",
    )

    @field_validator("messages")
    @classmethod
    def _require_user_message(cls, messages: List[ChatMessage]) -> List[ChatMessage]:
        if not any(message.role == "user" and message.content.strip() for message in messages):
            raise ValueError("messages must contain at least one user message")
        return messages
