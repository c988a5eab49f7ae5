"""Async LLM provider for OpenAI-compatible chat completion APIs."""

from __future__ import annotations

import json
import time
from typing import Any, AsyncGenerator, Dict, List, Optional, Union

import httpx

from .base import (
    LLMMessage,
    LLMProvider,
    LLMProviderAPIError,
    LLMProviderAuthError,
    LLMProviderError,
    LLMProviderRateLimitError,
    LLMResponse,
    ToolCall,
    ToolDefinition,
)


class OpenAIProvider(LLMProvider):
    """OpenAI chat completion provider with function calling."""

    supports_tools: bool = True

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        *,
        base_url: str | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> None:
        self.base_url = (base_url or "https://api.openai.com").rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._chat_completions_path = "/v1/chat/completions"
        super().__init__(api_key, model, **kwargs)

    def _setup_client(self, **kwargs: Any) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json, text/event-stream",
            },
        )

    def _raise_for_status(self, exc: httpx.HTTPStatusError, message: str) -> None:
        status = exc.response.status_code
        if status in (401, 403):
            raise LLMProviderAuthError(f"OpenAI authentication failed: {message}") from exc
        if status == 429:
            raise LLMProviderRateLimitError("OpenAI rate limit exceeded") from exc
        raise LLMProviderAPIError(f"OpenAI API error ({status}): {message}") from exc

    async def _post(self, path: str, json: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.post(path, json=json)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            self._raise_for_status(exc, exc.response.text)
        except httpx.RequestError as exc:
            raise LLMProviderAPIError(f"OpenAI request error: {exc}") from exc

    async def generate_response(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        tools: Optional[List[ToolDefinition]] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        start_time = time.time()

        payload = self._build_payload(
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            tools=tools,
            extra=kwargs,
        )

        data = await self._post(self._chat_completions_path, json=payload)

        choices = data.get("choices", [])
        if not choices:
            raise LLMProviderError("OpenAI response missing choices")

        choice = choices[0]
        message = choice.get("message") or {}
        content = self._normalize_content(message.get("content"))
        tool_calls = [self._parse_tool_call(raw) for raw in message.get("tool_calls") or []]

        usage = data.get("usage", {})
        return self._create_response(
            content=content or None,
            tool_calls=tool_calls or None,
            tokens_used=usage.get("total_tokens"),
            finish_reason=choice.get("finish_reason"),
            response_time_ms=self._measure_time(start_time),
        )

    async def generate_streaming_response(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        tools: Optional[List[ToolDefinition]] = None,
        **kwargs: Any,
    ) -> AsyncGenerator[Union[str, LLMResponse], None]:
        start_time = time.time()
        payload = self._build_payload(
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            tools=tools,
            extra=kwargs,
            stream=True,
        )

        content_parts: List[str] = []
        # Tool call fragments arrive keyed by index and are concatenated in order
        fragments: Dict[int, Dict[str, Any]] = {}
        finish_reason: Optional[str] = None
        tokens_used: Optional[int] = None

        try:
            async with self._client.stream("POST", self._chat_completions_path, json=payload) as response:
                try:
                    response.raise_for_status()
                except httpx.HTTPStatusError as exc:
                    await response.aread()
                    self._raise_for_status(exc, response.text)

                async for chunk in self._iter_events(response):
                    usage = chunk.get("usage") or {}
                    if usage.get("total_tokens") is not None:
                        tokens_used = usage["total_tokens"]

                    for choice in chunk.get("choices") or []:
                        delta = choice.get("delta") or {}
                        segment = self._normalize_content(delta.get("content"))
                        if segment:
                            content_parts.append(segment)
                            yield segment
                        for fragment in delta.get("tool_calls") or []:
                            self._merge_tool_fragment(fragments, fragment)
                        if choice.get("finish_reason"):
                            finish_reason = choice["finish_reason"]
        except httpx.RequestError as exc:
            raise LLMProviderAPIError(f"OpenAI request error: {exc}") from exc

        tool_calls = [self._parse_tool_call(fragments[index]) for index in sorted(fragments)]
        content = "".join(content_parts)
        yield self._create_response(
            content=content or None,
            tool_calls=tool_calls or None,
            tokens_used=tokens_used,
            finish_reason=finish_reason,
            response_time_ms=self._measure_time(start_time),
        )

    async def _iter_events(self, response: httpx.Response) -> AsyncGenerator[Dict[str, Any], None]:
        async for raw_line in response.aiter_lines():
            line = raw_line.strip()
            # Server-Sent Events: skip comments, blank lines and event names
            if not line or line.startswith(":") or line.startswith("event:"):
                continue
            if line.startswith("data:"):
                line = line[len("data:"):].strip()
            if line == "[DONE]":
                break

            try:
                chunk = json.loads(line)
            except json.JSONDecodeError:
                self.logger.warning("Skipping malformed stream chunk: %s", line[:80])
                continue
            yield chunk

    @staticmethod
    def _merge_tool_fragment(fragments: Dict[int, Dict[str, Any]], fragment: Dict[str, Any]) -> None:
        entry = fragments.setdefault(
            fragment.get("index", len(fragments)),
            {"id": "", "function": {"name": "", "arguments": ""}},
        )
        if fragment.get("id"):
            entry["id"] = fragment["id"]
        function = fragment.get("function") or {}
        if function.get("name"):
            entry["function"]["name"] = function["name"]
        if function.get("arguments"):
            entry["function"]["arguments"] += function["arguments"]

    async def health_check(self) -> Dict[str, Any]:
        try:
            response = await self.generate_response(
                messages=[LLMMessage(role="user", content="ping")],
                max_tokens=4,
                temperature=0.0,
            )
        except LLMProviderAuthError as exc:
            return {"status": "error", "provider": "openai", "model": self.model, "error": str(exc)}
        except LLMProviderRateLimitError:
            return {"status": "degraded", "provider": "openai", "model": self.model, "error": "rate_limited"}
        except LLMProviderError as exc:
            return {"status": "error", "provider": "openai", "model": self.model, "error": str(exc)}

        return {
            "status": "healthy",
            "provider": "openai",
            "model": self.model,
            "response_preview": (response.content or "")[:32],
        }

    async def close(self) -> None:
        await self._client.aclose()

    def _parse_tool_call(self, raw: Dict[str, Any]) -> ToolCall:
        function = raw.get("function") or {}
        arguments_text = function.get("arguments") or "{}"
        argument_error = None
        try:
            arguments = json.loads(arguments_text)
        except json.JSONDecodeError:
            arguments = {}
            argument_error = f"Arguments for {function.get('name')} are not valid JSON"
        return ToolCall(
            id=raw.get("id") or "",
            name=function.get("name") or "",
            arguments=arguments,
            argument_error=argument_error,
        )

    def _convert_message(self, msg: LLMMessage) -> Dict[str, Any]:
        if msg.role == "tool" and msg.tool_result:
            return msg.tool_result.to_openai_format()

        if msg.role == "assistant" and msg.tool_calls:
            return {
                "role": "assistant",
                "content": msg.content,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                    }
                    for tc in msg.tool_calls
                ],
            }

        return {"role": msg.role, "content": msg.content or ""}

    def _build_payload(
        self,
        *,
        messages: List[LLMMessage],
        max_tokens: Optional[int],
        temperature: Optional[float],
        tools: Optional[List[ToolDefinition]] = None,
        extra: Optional[Dict[str, Any]] = None,
        stream: bool = False,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [self._convert_message(msg) for msg in messages],
        }

        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if temperature is not None:
            payload["temperature"] = temperature
        if tools:
            payload["tools"] = [tool.to_openai_format() for tool in tools]

        if extra:
            for key, value in extra.items():
                if value is not None:
                    payload[key] = value

        if stream:
            payload["stream"] = True
            payload["stream_options"] = {"include_usage": True}

        return payload

    def _normalize_content(self, content: Any) -> str:
        if content is None:
            return ""
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts: List[str] = []
            for item in content:
                if isinstance(item, str):
                    parts.append(item)
                elif isinstance(item, dict) and item.get("text") is not None:
                    parts.append(str(item["text"]))
            return "".join(parts)
        return str(content)
