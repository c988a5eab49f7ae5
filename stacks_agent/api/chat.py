from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import PlainTextResponse, StreamingResponse

from ..config import settings
from ..core.agent import AgentPool, ToolContext, build_tool_context, get_agent_pool
from ..core.chat import describe_error, resume_stream, run_chat, stream_chat
from ..providers.llm.base import LLMProviderError
from ..types import ChatEnvelope, ChatRequest

router = APIRouter(prefix="/api")


def get_tool_context() -> ToolContext:
    """Per-request wallet and providers; fails fast on missing configuration."""
    return build_tool_context(settings)


def _thread_headers(thread_id: Optional[str]) -> dict:
    return {"X-Thread-Id": thread_id} if thread_id else {}


@router.post("/chat", response_model=ChatEnvelope, response_model_exclude_none=True)
async def chat_endpoint(
    request: ChatRequest,
    x_thread_id: Optional[str] = Header(default=None),
    pool: AgentPool = Depends(get_agent_pool),
    context: ToolContext = Depends(get_tool_context),
) -> ChatEnvelope:
    """Answer the latest user message and return the JSON envelope"""

    return await run_chat(request, pool=pool, context=context, thread_id=x_thread_id)


@router.post("/chat/stream")
async def chat_stream_endpoint(
    request: ChatRequest,
    x_thread_id: Optional[str] = Header(default=None),
    pool: AgentPool = Depends(get_agent_pool),
    context: ToolContext = Depends(get_tool_context),
):
    """Stream the reply as plain text while the model produces it."""

    headers = {"Cache-Control": "no-cache", **_thread_headers(x_thread_id)}
    stream = stream_chat(request, pool=pool, context=context)

    # Wait for the first chunk so failures before any output keep their status code
    try:
        first_chunk = await stream.__anext__()
    except StopAsyncIteration:
        first_chunk = ""
    except LLMProviderError as exc:
        status_code, message = describe_error(exc)
        return PlainTextResponse(message, status_code=status_code, headers=headers)

    return StreamingResponse(
        resume_stream(first_chunk, stream),
        media_type="text/plain; charset=utf-8",
        headers=headers,
    )
