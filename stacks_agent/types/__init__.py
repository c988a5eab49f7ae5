from .requests import ChatMessage, ChatRequest
from .responses import ChatEnvelope, ToolInfo, ToolInvocationResponse, ToolParameterInfo

__all__ = [
    "ChatMessage",
    "ChatRequest",
    "ChatEnvelope",
    "ToolInfo",
    "ToolInvocationResponse",
    "ToolParameterInfo",
]
