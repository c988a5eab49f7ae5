"""
Core Agent System

The Agent drives one request cycle: it seeds the conversation with the system
prompt and the latest user message, then runs the dispatch graph until the
model answers or the step cap is reached.
"""

import logging
import time
from functools import lru_cache
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from ...config import Settings, settings as default_settings
from ...providers.llm import LLMConfigurationError, canonical_provider_name, get_llm_provider
from ...providers.llm.base import LLMMessage, LLMProvider, LLMProviderAPIError, LLMResponse
from ...types.requests import ChatMessage
from .context import ToolContext
from .graph import build_dispatch_graph, recursion_limit_for
from .prompts import SYSTEM_PROMPT
from .tools import ToolExecutor, ToolRegistry, get_tool_registry

# Separator placed between the texts of consecutive model steps
STEP_SEPARATOR = "\n\n"


class AgentResponse(BaseModel):
    """Structured response from one dispatch loop run"""

    reply: str = Field(description="Natural language response from the agent")
    steps: int = Field(default=0, description="Model calls made")
    tool_calls: List[str] = Field(default_factory=list, description="Names of the tools executed, in order")
    stopped_at_cap: bool = Field(default=False, description="True when the step cap cut the loop short")
    model: Optional[str] = Field(default=None, description="Model that produced the reply")
    tokens_used: Optional[int] = Field(default=None, description="Total tokens consumed")
    processing_time_ms: Optional[float] = Field(default=None, description="Response processing time")


def latest_user_message(messages: Sequence[ChatMessage]) -> str:
    """Content of the most recent user message."""
    for message in reversed(messages):
        if message.role == "user" and message.content.strip():
            return message.content
    raise ValueError("Conversation does not contain a user message")


class Agent:
    """
    Core Agent class that runs the bounded tool-calling loop for one model.
    """

    def __init__(
        self,
        llm_provider: LLMProvider,
        registry: Optional[ToolRegistry] = None,
        max_steps: Optional[int] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        system_prompt: str = SYSTEM_PROMPT,
        logger: Optional[logging.Logger] = None,
    ):
        self.llm_provider = llm_provider
        self.registry = registry or get_tool_registry()
        self.max_steps = max_steps or default_settings.max_tool_steps
        self.max_tokens = max_tokens or default_settings.max_tokens
        self.temperature = default_settings.temperature if temperature is None else temperature
        self.system_prompt = system_prompt
        self.logger = logger or logging.getLogger(__name__)
        self._tool_definitions = self.registry.get_definitions()
        # LangGraph pipeline orchestrating the dispatch loop
        self._graph = build_dispatch_graph(self)

    @property
    def model(self) -> str:
        return self.llm_provider.model

    async def _call_model(self, messages: List[LLMMessage]) -> LLMResponse:
        return await self.llm_provider.generate_response(
            messages=messages,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            tools=self._tool_definitions if self.llm_provider.supports_tools else None,
        )

    async def _stream_model(self, messages: List[LLMMessage], emit: Callable[[str], None]) -> LLMResponse:
        """Forward each text delta to ``emit`` and return the assembled response."""
        response: Optional[LLMResponse] = None
        async for event in self.llm_provider.generate_streaming_response(
            messages=messages,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            tools=self._tool_definitions if self.llm_provider.supports_tools else None,
        ):
            if isinstance(event, LLMResponse):
                response = event
            elif event:
                emit(event)
        if response is None:
            raise LLMProviderAPIError("Model stream ended without a final response")
        return response

    def _initial_state(self, messages: Sequence[ChatMessage], context: ToolContext) -> Dict[str, Any]:
        return {
            "executor": ToolExecutor(self.registry, context, logger=self.logger),
            "messages": [
                LLMMessage(role="system", content=self.system_prompt),
                LLMMessage(role="user", content=latest_user_message(messages)),
            ],
            "steps": 0,
            "tokens_used": 0,
            "tool_calls_made": [],
        }

    def _graph_config(self) -> Dict[str, Any]:
        return {"recursion_limit": recursion_limit_for(self.max_steps)}

    async def run(self, messages: Sequence[ChatMessage], context: ToolContext) -> AgentResponse:
        """Run the loop to completion and return the final answer."""
        start_time = time.time()
        state = await self._graph.ainvoke(self._initial_state(messages, context), config=self._graph_config())

        response = AgentResponse(
            reply=state["final_text"],
            steps=state.get("steps", 0),
            tool_calls=state.get("tool_calls_made", []),
            stopped_at_cap=state.get("stopped_at_cap", False),
            model=self.model,
            tokens_used=state.get("tokens_used") or None,
            processing_time_ms=(time.time() - start_time) * 1000,
        )
        self.logger.info(
            f"Agent run finished: model={self.model} steps={response.steps} "
            f"tools={len(response.tool_calls)} capped={response.stopped_at_cap}"
        )
        return response

    async def stream(self, messages: Sequence[ChatMessage], context: ToolContext) -> AsyncGenerator[str, None]:
        """Yield the model's text deltas as they are produced.

        Texts of consecutive model steps are separated by ``STEP_SEPARATOR``.
        When no step produced text, the final fallback answer is yielded once.
        """
        state = self._initial_state(messages, context)
        state["streaming"] = True
        emitted = False
        current_step = None

        async for mode, chunk in self._graph.astream(
            state,
            config=self._graph_config(),
            stream_mode=["custom", "updates"],
        ):
            if mode == "custom":
                delta = chunk["delta"]
                if chunk["step"] != current_step:
                    # leading whitespace of a step is dropped, as in the non-streamed reply
                    delta = delta.lstrip()
                    if not delta:
                        continue
                    if emitted:
                        yield STEP_SEPARATOR
                    current_step = chunk["step"]
                emitted = True
                yield delta
            elif mode == "updates":
                final = chunk.get("finalize")
                if final and not emitted:
                    yield final["final_text"]


class AgentPool:
    """One read-only agent per configured model, keyed by model id."""

    def __init__(self, agents: Dict[str, Agent], default_model: str):
        if default_model not in agents:
            raise LLMConfigurationError(f"Default model {default_model} has no agent")
        self._agents = dict(agents)
        self.default_model = default_model

    @property
    def models(self) -> List[str]:
        return list(self._agents)

    def get(self, model: Optional[str] = None) -> Agent:
        """Agent for ``model``; unknown or missing ids fall back to the default."""
        if model and model in self._agents:
            return self._agents[model]
        return self._agents[self.default_model]


def build_agent_pool(settings: Settings, registry: Optional[ToolRegistry] = None) -> AgentPool:
    """Create agents for every catalog model whose provider has an API key."""
    logger = logging.getLogger(__name__)
    registry = registry or get_tool_registry()
    agents: Dict[str, Agent] = {}

    for provider_name, options in settings.provider_models_catalog.items():
        provider = canonical_provider_name(provider_name)
        if not settings.api_key_for_provider(provider):
            continue
        for option in options:
            model_id = option.get("id")
            if not model_id or model_id in agents:
                continue
            agents[model_id] = Agent(
                llm_provider=get_llm_provider(provider_name=provider, model=model_id),
                registry=registry,
                max_steps=settings.max_tool_steps,
                max_tokens=settings.max_tokens,
                temperature=settings.temperature,
            )
            logger.info("Agent initialized for provider=%s model=%s", provider, model_id)

    if not agents:
        raise LLMConfigurationError(
            f"No API key configured for provider: {canonical_provider_name(settings.llm_provider)}"
        )

    default_model = settings.llm_model
    if default_model not in agents:
        configured = canonical_provider_name(settings.llm_provider)
        candidate = settings.resolve_default_model(configured)
        default_model = candidate if candidate in agents else next(iter(agents))
    return AgentPool(agents, default_model)


@lru_cache(maxsize=1)
def get_agent_pool() -> AgentPool:
    """Process-wide agent pool built from the global settings."""
    return build_agent_pool(default_settings)
