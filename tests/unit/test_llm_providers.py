import json
from types import SimpleNamespace

import httpx
import pytest

from stacks_agent.config import Settings
from stacks_agent.providers import llm
from stacks_agent.providers.llm import LLMConfigurationError, canonical_provider_name, get_llm_provider
from stacks_agent.providers.llm.anthropic import AnthropicProvider
from stacks_agent.providers.llm.base import (
    LLMMessage,
    LLMProviderAPIError,
    LLMProviderAuthError,
    LLMProviderRateLimitError,
    ToolArgumentError,
    ToolCall,
    ToolDefinition,
    ToolParameter,
    ToolParameterType,
    ToolResult,
)
from stacks_agent.providers.llm.openai import OpenAIProvider

BALANCE_TOOL = ToolDefinition(
    name="get_stx_balance",
    description="Get the STX balance",
    parameters=[
        ToolParameter(name="address", type=ToolParameterType.STRING, description="Address", required=False),
    ],
)


def _openai(handler):
    return OpenAIProvider(
        api_key="sk-test",
        model="gpt-4o",
        base_url="https://openai.test",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_openai_parses_tool_calls_and_sends_tools():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "choices": [
                    {
                        "finish_reason": "tool_calls",
                        "message": {
                            "content": None,
                            "tool_calls": [
                                {
                                    "id": "call_1",
                                    "type": "function",
                                    "function": {"name": "get_stx_balance", "arguments": "{}"},
                                },
                                {
                                    "id": "call_2",
                                    "type": "function",
                                    "function": {"name": "get_stx_balance", "arguments": "{not json"},
                                },
                            ],
                        },
                    }
                ],
                "usage": {"total_tokens": 42},
            },
        )

    provider = _openai(handler)
    response = await provider.generate_response(
        [LLMMessage(role="system", content="be brief"), LLMMessage(role="user", content="balance?")],
        max_tokens=100,
        temperature=0.2,
        tools=[BALANCE_TOOL],
    )

    assert seen["path"] == "/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["tools"][0]["function"]["name"] == "get_stx_balance"
    assert seen["body"]["messages"][0] == {"role": "system", "content": "be brief"}
    assert response.content is None
    assert response.tokens_used == 42
    assert [tc.id for tc in response.tool_calls] == ["call_1", "call_2"]
    assert response.tool_calls[0].argument_error is None
    assert response.tool_calls[1].argument_error == "Arguments for get_stx_balance are not valid JSON"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,error",
    [(429, LLMProviderRateLimitError), (401, LLMProviderAuthError), (500, LLMProviderAPIError)],
)
async def test_openai_status_codes_map_to_provider_errors(status, error):
    def handler(request):
        return httpx.Response(status, json={"error": {"message": "nope"}})

    with pytest.raises(error):
        await _openai(handler).generate_response([LLMMessage(role="user", content="hi")])


@pytest.mark.asyncio
async def test_openai_replays_tool_turns():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "done"}}]})

    call = ToolCall(id="call_1", name="get_stx_balance", arguments={})
    messages = [
        LLMMessage(role="user", content="balance?"),
        LLMMessage(role="assistant", content=None, tool_calls=[call]),
        LLMMessage(role="tool", tool_result=ToolResult(tool_call_id="call_1", result={"formatted": "1 STX"})),
    ]

    response = await _openai(handler).generate_response(messages)

    sent = seen["body"]["messages"]
    assert sent[1]["tool_calls"][0]["function"] == {"name": "get_stx_balance", "arguments": "{}"}
    assert sent[2] == {"role": "tool", "tool_call_id": "call_1", "content": '{"formatted": "1 STX"}'}
    assert response.content == "done"


@pytest.mark.asyncio
async def test_openai_streaming_reads_server_sent_events():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        body = (
            'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n'
            ": keep-alive\n\n"
            'data: {"choices":[{"delta":{"content":"lo"},"finish_reason":"stop"}]}\n\n'
            'data: {"choices":[],"usage":{"total_tokens":7}}\n\n'
            "data: [DONE]\n\n"
        )
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    events = [
        event
        async for event in _openai(handler).generate_streaming_response([LLMMessage(role="user", content="hi")])
    ]

    assert seen["body"]["stream"] is True
    assert events[:2] == ["Hel", "lo"]
    final = events[-1]
    assert len(events) == 3
    assert final.content == "Hello"
    assert final.tool_calls is None
    assert final.finish_reason == "stop"
    assert final.tokens_used == 7


@pytest.mark.asyncio
async def test_openai_streaming_assembles_tool_call_fragments():
    def handler(request):
        chunks = [
            {"choices": [{"delta": {"content": "Checking. "}}]},
            {"choices": [{"delta": {"tool_calls": [
                {"index": 0, "id": "call_1", "function": {"name": "get_stx_balance", "arguments": ""}}
            ]}}]},
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": '{"addr'}}]}}]},
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": 'ess": "SP1"}'}}]}}]},
            {"choices": [{"delta": {"tool_calls": [
                {"index": 1, "id": "call_2", "function": {"name": "get_wallet_address", "arguments": "{}"}}
            ]}, "finish_reason": "tool_calls"}]},
        ]
        body = "".join(f"data: {json.dumps(chunk)}\n\n" for chunk in chunks) + "data: [DONE]\n\n"
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    events = [
        event
        async for event in _openai(handler).generate_streaming_response(
            [LLMMessage(role="user", content="balance?")], tools=[BALANCE_TOOL]
        )
    ]

    assert events[0] == "Checking. "
    final = events[-1]
    assert final.content == "Checking. "
    assert final.finish_reason == "tool_calls"
    assert [(tc.id, tc.name, tc.arguments) for tc in final.tool_calls] == [
        ("call_1", "get_stx_balance", {"address": "SP1"}),
        ("call_2", "get_wallet_address", {}),
    ]


@pytest.mark.asyncio
async def test_openai_streaming_rate_limit():
    def handler(request):
        return httpx.Response(429, json={"error": {"message": "slow down"}})

    with pytest.raises(LLMProviderRateLimitError):
        async for _ in _openai(handler).generate_streaming_response([LLMMessage(role="user", content="hi")]):
            pass


class _FakeMessages:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.params = None

    async def create(self, **params):
        self.params = params
        if self.error is not None:
            raise self.error
        return self.response

    def stream(self, **params):
        self.params = params
        return _FakeStream(self.response, self.error)


class _FakeStream:
    def __init__(self, response, error):
        self.response = response
        self.error = error

    async def __aenter__(self):
        if self.error is not None:
            raise self.error
        return self

    async def __aexit__(self, *exc_info):
        return False

    @property
    async def text_stream(self):
        for block in self.response.content:
            if block.type == "text":
                for word in block.text.split(" "):
                    yield word

    async def get_final_message(self):
        return self.response


def _anthropic(messages):
    return AnthropicProvider(
        api_key="test",
        model="claude-sonnet-4-20250514",
        client=SimpleNamespace(messages=messages),
    )


@pytest.mark.asyncio
async def test_anthropic_folds_tool_results_and_parses_tool_use():
    fake = _FakeMessages(
        response=SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Looking up both."),
                SimpleNamespace(type="tool_use", id="tu_1", name="get_wallet_address", input={}),
            ],
            usage=SimpleNamespace(output_tokens=12),
            stop_reason="tool_use",
        )
    )
    calls = [ToolCall(id="a", name="get_stx_balance"), ToolCall(id="b", name="get_token_balances")]
    messages = [
        LLMMessage(role="system", content="system prompt"),
        LLMMessage(role="user", content="hi"),
        LLMMessage(role="assistant", tool_calls=calls),
        LLMMessage(role="tool", tool_result=ToolResult(tool_call_id="a", result={"ok": 1})),
        LLMMessage(role="tool", tool_result=ToolResult(tool_call_id="b", error="boom")),
    ]

    response = await _anthropic(fake).generate_response(messages, tools=[BALANCE_TOOL])

    params = fake.params
    assert params["system"] == "system prompt"
    assert [m["role"] for m in params["messages"]] == ["user", "assistant", "user"]
    folded = params["messages"][2]["content"]
    assert [block["tool_use_id"] for block in folded] == ["a", "b"]
    assert folded[1]["is_error"] is True
    assert params["tools"][0]["input_schema"]["type"] == "object"
    assert response.content == "Looking up both."
    assert response.tool_calls[0].name == "get_wallet_address"
    assert response.tokens_used == 12


@pytest.mark.asyncio
async def test_anthropic_streams_text_then_final_message():
    fake = _FakeMessages(
        response=SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="One moment please"),
                SimpleNamespace(type="tool_use", id="tu_1", name="get_stx_balance", input={}),
            ],
            usage=SimpleNamespace(output_tokens=9),
            stop_reason="tool_use",
        )
    )

    events = [
        event
        async for event in _anthropic(fake).generate_streaming_response(
            [LLMMessage(role="user", content="balance?")], tools=[BALANCE_TOOL]
        )
    ]

    assert events[:-1] == ["One", "moment", "please"]
    assert fake.params["tools"][0]["name"] == "get_stx_balance"
    final = events[-1]
    assert final.content == "One moment please"
    assert final.tool_calls[0].name == "get_stx_balance"
    assert final.finish_reason == "tool_use"


def test_validate_arguments_fills_defaults_and_checks_enum():
    definition = ToolDefinition(
        name="demo",
        description="demo",
        parameters=[
            ToolParameter(name="limit", type=ToolParameterType.INTEGER, description="n", required=False, default=10),
            ToolParameter(name="side", type=ToolParameterType.STRING, description="s", enum=["buy", "sell"]),
        ],
    )

    assert definition.validate_arguments({"side": "buy"}) == {"limit": 10, "side": "buy"}
    assert definition.validate_arguments({"side": "sell", "limit": 3.0}) == {"limit": 3, "side": "sell"}
    assert definition.validate_arguments({"side": "buy", "limit": None}) == {"limit": 10, "side": "buy"}
    with pytest.raises(ToolArgumentError, match="must be one of"):
        definition.validate_arguments({"side": "hold"})
    with pytest.raises(ToolArgumentError, match="Missing required argument 'side'"):
        definition.validate_arguments(None)


def test_provider_aliases():
    assert canonical_provider_name("Claude") == "anthropic"
    assert canonical_provider_name("gpt") == "openai"
    assert canonical_provider_name("openai") == "openai"


def test_get_llm_provider_detects_provider_from_model(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "ak-test")
    monkeypatch.setenv("LLM_PROVIDER", "openai")
    monkeypatch.setenv("LLM_MODEL", "gpt-4o")
    monkeypatch.setattr("stacks_agent.config.settings", Settings())

    provider = get_llm_provider(model="claude-sonnet-4-20250514", client=SimpleNamespace(messages=None))
    default = get_llm_provider(transport=httpx.MockTransport(lambda request: httpx.Response(500)))

    assert isinstance(provider, AnthropicProvider)
    assert provider.model == "claude-sonnet-4-20250514"
    assert isinstance(default, OpenAIProvider)
    assert default.model == "gpt-4o"


def test_get_llm_provider_requires_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("LLM_PROVIDER", "openai")
    monkeypatch.setattr("stacks_agent.config.settings", Settings())

    with pytest.raises(LLMConfigurationError, match="No API key configured for provider: openai"):
        get_llm_provider()

    available = llm.get_available_providers()
    assert available["openai"]["status"] == "unconfigured"
