import re

import httpx
import pytest
from fastapi.testclient import TestClient

from stacks_agent.api.chat import get_tool_context
from stacks_agent.config import Settings
from stacks_agent.core.agent import Agent, AgentPool, ToolContext, build_tool_context, get_agent_pool
from stacks_agent.core.agent.tools import get_tool_registry
from stacks_agent.core.chat import RATE_LIMIT_MESSAGE
from stacks_agent.main import app
from stacks_agent.providers.alex import AlexProvider
from stacks_agent.providers.hiro import HiroProvider
from stacks_agent.providers.llm.base import (
    LLMProvider,
    LLMProviderAPIError,
    LLMProviderRateLimitError,
    LLMResponse,
    ToolCall,
)
from stacks_agent.providers.velar import VelarProvider
from stacks_agent.services.mock_data import MockHiroProvider
from stacks_agent.services.wallet import MOCK_WALLET_ADDRESS, WalletContext

client = TestClient(app)


class _StubProvider(LLMProvider):
    supports_tools = True

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = 0
        super().__init__(api_key="test", model="gpt-4o")

    def _setup_client(self, **kwargs):
        pass

    async def generate_response(self, messages, max_tokens=None, temperature=None, tools=None, **kwargs):
        self.calls += 1
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    async def generate_streaming_response(self, messages, max_tokens=None, temperature=None, tools=None, **kwargs):
        response = await self.generate_response(messages, max_tokens, temperature, tools)
        for token in re.split(r"(?<= )", response.content or ""):
            if token:
                yield token
        yield response

    async def health_check(self):
        return {"status": "healthy"}


def _mock_context():
    offline = httpx.MockTransport(lambda request: httpx.Response(503))
    return ToolContext(
        settings=Settings(),
        wallet=WalletContext(address=MOCK_WALLET_ADDRESS, mock=True),
        hiro=MockHiroProvider(base_url="https://hiro.test"),
        velar=VelarProvider(base_url="https://velar.test", transport=offline),
        alex=AlexProvider(base_url="https://alex.test", transport=offline),
    )


@pytest.fixture
def use_provider():
    def _install(*responses):
        provider = _StubProvider(responses)
        agent = Agent(llm_provider=provider, registry=get_tool_registry(), max_steps=5)
        app.dependency_overrides[get_agent_pool] = lambda: AgentPool({"gpt-4o": agent}, default_model="gpt-4o")
        app.dependency_overrides[get_tool_context] = _mock_context
        return provider

    yield _install
    app.dependency_overrides.clear()


def _body(text="what is my balance?", **extra):
    return {"messages": [{"role": "user", "content": text}], **extra}


def test_chat_returns_envelope_with_thread_id(use_provider):
    use_provider(
        LLMResponse(tool_calls=[ToolCall(id="c1", name="get_stx_balance", arguments={})]),
        LLMResponse(content="You have 2000.5 STX available."),
    )

    response = client.post("/api/chat", json=_body(), headers={"X-Thread-Id": "thread-42"})

    assert response.status_code == 200
    assert response.json() == {"threadId": "thread-42", "message": "You have 2000.5 STX available."}


def test_chat_without_thread_id_omits_it(use_provider):
    use_provider(LLMResponse(content="Hi there"))

    response = client.post("/api/chat", json=_body("hello", selectedModel="not-in-catalog"))

    assert response.status_code == 200
    assert response.json() == {"message": "Hi there"}


def test_chat_survives_failing_adapter(use_provider):
    provider = use_provider(
        LLMResponse(tool_calls=[ToolCall(id="c1", name="get_velar_tokens", arguments={"symbol": "VELAR"})]),
        LLMResponse(content="Velar is not reachable right now."),
    )

    response = client.post("/api/chat", json=_body("velar price?"))

    assert response.status_code == 200
    assert response.json() == {"message": "Velar is not reachable right now."}
    assert provider.calls == 2


def test_chat_rate_limit_maps_to_429(use_provider):
    use_provider(LLMProviderRateLimitError("rate limited"))

    response = client.post("/api/chat", json=_body(), headers={"X-Thread-Id": "t-1"})

    assert response.status_code == 429
    assert response.json() == {"threadId": "t-1", "error": RATE_LIMIT_MESSAGE}


def test_chat_model_failure_maps_to_502(use_provider):
    use_provider(LLMProviderAPIError("upstream exploded"))

    response = client.post("/api/chat", json=_body())

    assert response.status_code == 502
    assert "upstream exploded" in response.json()["error"]


def test_chat_missing_mnemonic_fails_before_model_call(use_provider, monkeypatch):
    provider = use_provider(LLMResponse(content="should not be used"))
    monkeypatch.setenv("MOCK_MODE", "false")
    monkeypatch.setenv("WALLET_MNEMONIC", "")
    monkeypatch.delenv("NEXT_PUBLIC_WALLET_MNEMONIC", raising=False)
    app.dependency_overrides[get_tool_context] = lambda: build_tool_context(
        Settings(), hiro=HiroProvider(base_url="https://hiro.test")
    )

    response = client.post("/api/chat", json=_body())

    assert response.status_code == 500
    assert response.json() == {"error": "WALLET_MNEMONIC environment variable is not set."}
    assert provider.calls == 0


def test_chat_requires_a_user_message(use_provider):
    use_provider(LLMResponse(content="unused"))

    response = client.post("/api/chat", json={"messages": [{"role": "assistant", "content": "hi"}]})

    assert response.status_code == 422


def test_chat_stream_concatenates_step_texts(use_provider):
    use_provider(
        LLMResponse(
            content="Checking your wallet.",
            tool_calls=[ToolCall(id="c1", name="get_wallet_address", arguments={})],
        ),
        LLMResponse(content=f"Your address is {MOCK_WALLET_ADDRESS}."),
    )

    response = client.post("/api/chat/stream", json=_body("address?"), headers={"X-Thread-Id": "s-1"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.headers["x-thread-id"] == "s-1"
    assert response.text == f"Checking your wallet.\n\nYour address is {MOCK_WALLET_ADDRESS}."


def test_chat_stream_rate_limit_before_output(use_provider):
    use_provider(LLMProviderRateLimitError("rate limited"))

    response = client.post("/api/chat/stream", json=_body())

    assert response.status_code == 429
    assert response.text == RATE_LIMIT_MESSAGE


def test_list_tools():
    response = client.get("/tools")

    assert response.status_code == 200
    tools = {tool["name"]: tool for tool in response.json()}
    assert len(tools) == 16
    cycle = tools["get_sbtc_rewards_by_cycle"]["parameters"][0]
    assert cycle == {
        "name": "cycle",
        "type": "integer",
        "description": "The rewards cycle ID",
        "required": True,
        "enum": None,
        "default": None,
    }


def test_invoke_tool_directly(use_provider):
    use_provider(LLMResponse(content="unused"))

    response = client.post("/tools/get_stx_balance", json={})

    assert response.status_code == 200
    body = response.json()
    assert body["tool"] == "get_stx_balance"
    assert body["result"]["formatted"] == "Total: 2500.75 STX, Locked: 500.25 STX, Available: 2000.5 STX"
    assert body["result"]["available"] == 2000.5
    assert "error" not in body


def test_invoke_tool_reports_argument_errors(use_provider):
    use_provider(LLMResponse(content="unused"))

    response = client.post("/tools/get_stx_balance", json={"address": "bogus"})

    assert response.status_code == 200
    assert response.json() == {"tool": "get_stx_balance", "error": "Invalid Stacks address: bogus"}


def test_invoke_unknown_tool_is_404(use_provider):
    use_provider(LLMResponse(content="unused"))

    response = client.post("/tools/transfer_everything", json={})

    assert response.status_code == 404
    assert response.json() == {"detail": "Tool transfer_everything not found"}


def test_health_reports_degraded_upstream(monkeypatch):
    async def healthy(self):
        return {"status": "healthy"}

    async def down(self):
        return {"status": "error", "reason": "timeout"}

    monkeypatch.setattr(MockHiroProvider, "health_check", healthy)
    monkeypatch.setattr(HiroProvider, "health_check", healthy)
    monkeypatch.setattr(VelarProvider, "health_check", down)
    monkeypatch.setattr(AlexProvider, "health_check", healthy)
    monkeypatch.setenv("MOCK_MODE", "true")
    monkeypatch.setattr("stacks_agent.api.health.settings", Settings())

    response = client.get("/healthz")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["available_providers"] == 2
    assert data["providers"]["velar"]["status"] == "error"
    assert data["wallet"] == {"mode": "mock", "configured": True, "network": "mainnet"}
