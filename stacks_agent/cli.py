"""Simple CLI for trying the Stacks DeFi agent locally"""

import argparse
import asyncio
import json
from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder

from .config import ConfigurationError, settings
from .core.agent import ToolExecutor, build_tool_context, get_agent_pool, get_tool_registry
from .core.chat import RATE_LIMIT_MESSAGE
from .logging_config import setup_logging
from .providers.llm.base import LLMProviderError, LLMProviderRateLimitError, ToolCall
from .types import ChatMessage


def parse_tool_arguments(pairs: List[str]) -> Dict[str, Any]:
    """Turn ``key=value`` pairs into arguments; values are read as JSON when possible."""
    arguments: Dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Expected key=value, got {pair!r}")
        key, raw = pair.split("=", 1)
        try:
            arguments[key] = json.loads(raw)
        except json.JSONDecodeError:
            arguments[key] = raw
    return arguments


def cli_tools() -> None:
    """Print the tool catalog"""
    registry = get_tool_registry()
    print(f"🧰 {len(registry)} tools available")
    print("-" * 40)
    for definition in registry.get_definitions():
        params = ", ".join(
            f"{p.name}{'' if p.required else '?'}:{p.type.value}" for p in definition.parameters
        )
        print(f"{definition.name}({params})")
        print(f"    {definition.description}")


async def cli_tool(name: str, pairs: List[str]) -> None:
    """Invoke a single tool and print its result"""
    registry = get_tool_registry()
    if not registry.has_tool(name):
        print(f"❌ Tool {name} not found")
        return

    context = build_tool_context(settings)
    executor = ToolExecutor(registry, context)
    result = await executor.execute_single(
        ToolCall(id="cli", name=name, arguments=parse_tool_arguments(pairs))
    )

    if result.error:
        print(f"❌ Error: {result.error}")
        return
    payload = jsonable_encoder(result.result)
    if isinstance(payload, dict) and payload.get("formatted"):
        print(payload["formatted"])
    else:
        print(json.dumps(payload, indent=2))


async def cli_chat(model: Optional[str] = None) -> None:
    """Interactive chat mode"""
    pool = get_agent_pool()
    agent = pool.get(model)
    context = build_tool_context(settings)

    print(f"🤖 Stacks DeFi Chat ({agent.model})")
    print(f"Wallet: {context.wallet.address}{' (mock)' if context.wallet.mock else ''}")
    print("Type 'exit' to quit")
    print("-" * 40)

    while True:
        try:
            user_input = input("\n💬 You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye! 👋")
            break

        if user_input.lower() in ['exit', 'quit', 'q']:
            print("Goodbye! 👋")
            break
        if not user_input:
            continue

        print("🤖 Assistant: ", end="", flush=True)
        try:
            response = await agent.run([ChatMessage(role="user", content=user_input)], context)
        except LLMProviderRateLimitError:
            print(RATE_LIMIT_MESSAGE)
            continue
        except LLMProviderError as e:
            print(f"❌ Error: {e}")
            continue

        print(response.reply)
        if response.tool_calls:
            print(f"   Tools: {', '.join(response.tool_calls)} ({response.steps} steps)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stacks DeFi Agent CLI")
    subparsers = parser.add_subparsers(dest="command")

    chat_parser = subparsers.add_parser("chat", help="Interactive chat mode")
    chat_parser.add_argument("--model", help="Model id from the catalog")

    subparsers.add_parser("tools", help="List the tool catalog")

    tool_parser = subparsers.add_parser("tool", help="Invoke one tool")
    tool_parser.add_argument("name", help="Tool name")
    tool_parser.add_argument("arguments", nargs="*", help="Arguments as key=value")

    return parser


async def run(args: argparse.Namespace) -> None:
    if args.command == "chat":
        await cli_chat(args.model)
    elif args.command == "tools":
        cli_tools()
    elif args.command == "tool":
        await cli_tool(args.name, args.arguments)


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    setup_logging("WARNING")
    try:
        asyncio.run(run(args))
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
