"""LangGraph-powered tool dispatch loop.

    call_model ──(tool calls, steps left)──▶ execute_tools ──▶ call_model
        │
        └──(no tool calls, or step cap reached)──▶ finalize ──▶ END

The step counter counts model calls. Tool calls still pending when the cap is
reached are not executed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional, TypedDict

from langgraph.graph import END, StateGraph
from langgraph.types import StreamWriter

from ...providers.llm.base import LLMMessage, LLMResponse, ToolCall, ToolResult
from .prompts import FALLBACK_REPLY

if TYPE_CHECKING:  # pragma: no cover
    from .base import Agent
    from .tools import ToolExecutor
else:  # pragma: no cover - runtime fallbacks for type hints
    Agent = Any  # type: ignore
    ToolExecutor = Any  # type: ignore


class DispatchState(TypedDict, total=False):
    """State passed between LangGraph nodes."""

    executor: "ToolExecutor"
    messages: List[LLMMessage]
    steps: int
    tokens_used: int
    last_response: Optional[LLMResponse]
    pending_tool_calls: List[ToolCall]
    last_tool_results: List[ToolResult]
    step_text: Optional[str]
    latest_text: Optional[str]
    tool_calls_made: List[str]
    stopped_at_cap: bool
    final_text: str
    streaming: bool


def best_partial_answer(state: DispatchState) -> str:
    """Latest model text, else the latest tool summaries, else a fixed apology."""

    latest_text = (state.get("latest_text") or "").strip()
    if latest_text:
        return latest_text

    summaries: List[str] = []
    for result in state.get("last_tool_results") or []:
        payload = result.payload
        if isinstance(payload, dict) and payload.get("formatted"):
            summaries.append(str(payload["formatted"]))
        elif isinstance(payload, dict) and payload.get("error"):
            summaries.append(f"Error: {payload['error']}")
    if summaries:
        return "\n\n".join(summaries)
    return FALLBACK_REPLY


def build_dispatch_graph(agent: "Agent"):
    """Compile the graph that powers ``Agent.run`` and ``Agent.stream``."""

    graph: StateGraph[DispatchState] = StateGraph(DispatchState)

    async def call_model(state: DispatchState, writer: StreamWriter) -> DispatchState:
        messages = list(state.get("messages") or [])
        steps = state.get("steps", 0) + 1

        # pylint: disable=protected-access
        if state.get("streaming"):
            response = await agent._stream_model(
                messages, lambda delta: writer({"step": steps, "delta": delta})
            )
        else:
            response = await agent._call_model(messages)
        tool_calls = list(response.tool_calls or [])
        text = (response.content or "").strip() or None

        messages.append(LLMMessage(role="assistant", content=response.content, tool_calls=tool_calls or None))
        agent.logger.info(
            f"Dispatch step {steps}/{agent.max_steps}: {len(tool_calls)} tool call(s) requested"
        )

        update: DispatchState = {
            "messages": messages,
            "steps": steps,
            "tokens_used": state.get("tokens_used", 0) + (response.tokens_used or 0),
            "last_response": response,
            "pending_tool_calls": tool_calls,
            "step_text": text,
        }
        if text:
            update["latest_text"] = text
        return update

    async def execute_tools(state: DispatchState) -> DispatchState:
        pending = state.get("pending_tool_calls") or []
        results = await state["executor"].execute_parallel(pending)

        messages = list(state.get("messages") or [])
        for result in results:
            messages.append(LLMMessage(role="tool", tool_result=result))

        return {
            "messages": messages,
            "pending_tool_calls": [],
            "last_tool_results": results,
            "tool_calls_made": list(state.get("tool_calls_made") or []) + [tc.name for tc in pending],
            "step_text": None,
        }

    async def finalize(state: DispatchState) -> DispatchState:
        stopped_at_cap = bool(state.get("pending_tool_calls"))
        if stopped_at_cap:
            agent.logger.warning(
                f"Step cap of {agent.max_steps} reached with "
                f"{len(state['pending_tool_calls'])} tool call(s) left unexecuted"
            )
        return {"final_text": best_partial_answer(state), "stopped_at_cap": stopped_at_cap}

    graph.add_node("call_model", call_model)
    graph.add_node("execute_tools", execute_tools)
    graph.add_node("finalize", finalize)

    graph.set_entry_point("call_model")

    def _after_model(state: DispatchState) -> str:
        if not state.get("pending_tool_calls"):
            return "done"
        if state.get("steps", 0) >= agent.max_steps:
            return "done"
        return "tools"

    graph.add_conditional_edges(
        "call_model",
        _after_model,
        {
            "tools": "execute_tools",
            "done": "finalize",
        },
    )
    graph.add_edge("execute_tools", "call_model")
    graph.add_edge("finalize", END)

    return graph.compile()


def recursion_limit_for(max_steps: int) -> int:
    """Graph super-steps needed for ``max_steps`` model calls plus headroom."""
    return 2 * max_steps + 5

