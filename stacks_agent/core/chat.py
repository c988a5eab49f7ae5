"""
Response assembly for the chat endpoints.

``run_chat`` waits for the dispatch loop and wraps the answer in the JSON
envelope; ``stream_chat`` yields the model's text deltas as they arrive.
Model-service failures are translated into a status code and a user-facing
message by ``describe_error``.
"""

import logging
from typing import AsyncGenerator, AsyncIterator, Optional, Tuple

from ..config import ConfigurationError
from ..providers.llm.base import LLMProviderError, LLMProviderRateLimitError
from ..types import ChatEnvelope, ChatRequest
from .agent import AgentPool, ToolContext
from .agent.base import STEP_SEPARATOR

_logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = (
    "The AI service is receiving too many requests right now. Please wait a moment and try again."
)


def describe_error(exc: Exception) -> Tuple[int, str]:
    """HTTP status and user-facing message for a failed chat request."""

    if isinstance(exc, LLMProviderRateLimitError):
        return 429, RATE_LIMIT_MESSAGE
    if isinstance(exc, ConfigurationError):
        return 500, str(exc)
    if isinstance(exc, LLMProviderError):
        return 502, f"The AI service failed to respond: {exc}"
    return 500, "Chat processing failed"


async def run_chat(
    request: ChatRequest,
    *,
    pool: AgentPool,
    context: ToolContext,
    thread_id: Optional[str] = None,
) -> ChatEnvelope:
    """Run the dispatch loop to completion and build the JSON envelope."""

    agent = pool.get(request.selected_model)
    response = await agent.run(request.messages, context)

    _logger.info(
        "Chat processed (model=%s steps=%s tools=%s capped=%s time=%.1fms)",
        response.model,
        response.steps,
        ",".join(response.tool_calls) or "-",
        response.stopped_at_cap,
        response.processing_time_ms or 0.0,
    )
    return ChatEnvelope(thread_id=thread_id, message=response.reply)


async def stream_chat(
    request: ChatRequest,
    *,
    pool: AgentPool,
    context: ToolContext,
) -> AsyncGenerator[str, None]:
    """Stream the reply text in the order the model produces it."""

    agent = pool.get(request.selected_model)
    async for delta in agent.stream(request.messages, context):
        yield delta


async def resume_stream(first_chunk: str, rest: AsyncIterator[str]) -> AsyncGenerator[str, None]:
    """Replay an already-received first chunk, then the remainder of the stream.

    Once the response has started, model failures can only be reported in-band,
    so they are emitted as a final text chunk.
    """

    if first_chunk:
        yield first_chunk
    try:
        async for chunk in rest:
            yield chunk
    except LLMProviderError as exc:
        _, message = describe_error(exc)
        _logger.error("Chat stream interrupted: %s", exc)
        yield STEP_SEPARATOR + message
