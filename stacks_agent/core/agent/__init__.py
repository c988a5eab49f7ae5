"""
Stacks DeFi Agent System

This package contains the tool registry, the bounded tool-calling loop and the
per-model agents that answer wallet and DeFi questions.
"""

from .base import Agent, AgentPool, AgentResponse, build_agent_pool, get_agent_pool
from .context import ToolContext, build_tool_context
from .tools import ToolExecutor, ToolName, ToolRegistry, get_tool_registry

__all__ = [
    "Agent",
    "AgentPool",
    "AgentResponse",
    "build_agent_pool",
    "get_agent_pool",
    "ToolContext",
    "build_tool_context",
    "ToolExecutor",
    "ToolName",
    "ToolRegistry",
    "get_tool_registry",
]
