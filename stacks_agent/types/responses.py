from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ChatEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    thread_id: Optional[str] = Field(default=None, alias="threadId", description="Thread identifier echoed from X-Thread-Id")
    message: Optional[str] = Field(default=None, description="Assistant reply")
    error: Optional[str] = Field(default=None, description="Error message if the request failed")


class ToolParameterInfo(BaseModel):
    name: str
    type: str
    description: str
    required: bool
    enum: Optional[List[str]] = None
    default: Optional[Any] = None


class ToolInfo(BaseModel):
    name: str = Field(description="Tool name")
    description: str = Field(description="What the tool does")
    parameters: List[ToolParameterInfo] = Field(default_factory=list, description="Declared parameters")


class ToolInvocationResponse(BaseModel):
    tool: str = Field(description="Tool that was invoked")
    result: Optional[Any] = Field(default=None, description="Tool output on success")
    error: Optional[str] = Field(default=None, description="Error message when the tool failed")
