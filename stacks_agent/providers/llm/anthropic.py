from typing import List, Dict, Any, Optional, AsyncGenerator, Union
import time

import anthropic
from anthropic import AsyncAnthropic

from .base import (
    LLMProvider, LLMMessage, LLMResponse,
    LLMProviderError, LLMProviderAPIError, LLMProviderAuthError, LLMProviderRateLimitError,
    ToolDefinition, ToolCall
)


class AnthropicProvider(LLMProvider):
    """Anthropic Claude LLM Provider implementation with native tool calling support"""

    supports_tools: bool = True

    def __init__(self, api_key: str, model: Optional[str] = None, **kwargs):
        if not model:
            raise ValueError("AnthropicProvider requires a model to be specified")

        super().__init__(api_key, model, **kwargs)

    def _setup_client(self, **kwargs) -> None:
        """Initialize the Anthropic client"""
        client = kwargs.get("client")
        self.client = client if client is not None else AsyncAnthropic(api_key=self.api_key)

    def _convert_messages(self, messages: List[LLMMessage]) -> tuple:
        """Split out the system prompt and convert the rest to Anthropic format.

        Consecutive tool results are folded into a single user turn, which is
        how the Messages API expects the answers to one tool_use turn.
        """
        system_message = None
        converted: List[Dict[str, Any]] = []

        for msg in messages:
            if msg.role == "system":
                system_message = msg.content
                continue

            if msg.role == "tool" and msg.tool_result:
                block = msg.tool_result.to_anthropic_format()
                previous = converted[-1] if converted else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and all(part.get("type") == "tool_result" for part in previous["content"])
                ):
                    previous["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})
                continue

            if msg.role == "assistant" and msg.tool_calls:
                content = []
                if msg.content:
                    content.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls:
                    content.append({
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": tc.arguments if isinstance(tc.arguments, dict) else {}
                    })
                converted.append({"role": "assistant", "content": content})
                continue

            converted.append({"role": msg.role, "content": msg.content or ""})

        return system_message, converted

    def _request_params(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int],
        temperature: Optional[float],
        tools: Optional[List[ToolDefinition]] = None,
    ) -> Dict[str, Any]:
        system_message, anthropic_messages = self._convert_messages(messages)
        request_params: Dict[str, Any] = {
            "model": self.model,
            "messages": anthropic_messages,
            "max_tokens": max_tokens or 4000,
        }
        if system_message:
            request_params["system"] = system_message
        if temperature is not None:
            request_params["temperature"] = temperature
        if tools:
            request_params["tools"] = [t.to_anthropic_format() for t in tools]
        return request_params

    def _translate_error(self, error: Exception, context: str) -> LLMProviderError:
        self.logger.error(f"LLM Provider error in {context}: {error}")
        if isinstance(error, anthropic.AuthenticationError):
            return LLMProviderAuthError(f"Authentication failed: {error}")
        if isinstance(error, anthropic.RateLimitError):
            return LLMProviderRateLimitError(f"Rate limit exceeded: {error}")
        if isinstance(error, anthropic.APIError):
            return LLMProviderAPIError(f"API error: {error}")
        return LLMProviderError(f"Unexpected error: {error}")

    def _to_llm_response(self, response: Any, start_time: float) -> LLMResponse:
        content = ""
        tool_calls = []
        for block in response.content or []:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                content += block.text
            elif block_type == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.id,
                    name=block.name,
                    arguments=getattr(block, "input", None) or {}
                ))

        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=content if content else None,
            tool_calls=tool_calls if tool_calls else None,
            tokens_used=getattr(usage, "output_tokens", None),
            model=self.model,
            finish_reason=getattr(response, "stop_reason", None),
            response_time_ms=self._measure_time(start_time)
        )

    async def generate_response(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        tools: Optional[List[ToolDefinition]] = None,
        **kwargs
    ) -> LLMResponse:
        """Generate a response from Claude with optional tool calling"""
        start_time = time.time()
        request_params = self._request_params(messages, max_tokens, temperature, tools)
        request_params.update(kwargs)

        try:
            response = await self.client.messages.create(**request_params)
        except anthropic.APIError as e:
            raise self._translate_error(e, "generate_response") from e

        return self._to_llm_response(response, start_time)

    async def generate_streaming_response(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        tools: Optional[List[ToolDefinition]] = None,
        **kwargs
    ) -> AsyncGenerator[Union[str, LLMResponse], None]:
        """Stream text deltas from Claude, then the assembled message with its tool calls"""
        start_time = time.time()
        request_params = self._request_params(messages, max_tokens, temperature, tools)
        request_params.update(kwargs)

        try:
            async with self.client.messages.stream(**request_params) as stream:
                async for text in stream.text_stream:
                    yield text
                final_message = await stream.get_final_message()
        except anthropic.APIError as e:
            raise self._translate_error(e, "generate_streaming_response") from e

        yield self._to_llm_response(final_message, start_time)

    async def health_check(self) -> Dict[str, Any]:
        """Check if Anthropic API is healthy"""
        start_time = time.time()
        try:
            response = await self.generate_response(
                messages=[LLMMessage(role="user", content="Hello")],
                max_tokens=10,
                temperature=0
            )
        except LLMProviderAuthError:
            return {"status": "error", "provider": "anthropic", "model": self.model, "error": "Authentication failed"}
        except LLMProviderRateLimitError:
            return {"status": "error", "provider": "anthropic", "model": self.model, "error": "Rate limit exceeded"}
        except LLMProviderError as e:
            return {"status": "error", "provider": "anthropic", "model": self.model, "error": str(e)}

        return {
            "status": "healthy",
            "provider": "anthropic",
            "model": self.model,
            "response_time_ms": self._measure_time(start_time),
            "test_response_length": len(response.content or "")
        }
