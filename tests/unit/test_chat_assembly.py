import pytest

from stacks_agent.cli import build_parser, parse_tool_arguments
from stacks_agent.core.chat import RATE_LIMIT_MESSAGE, STEP_SEPARATOR, describe_error, resume_stream
from stacks_agent.providers.llm import LLMConfigurationError
from stacks_agent.providers.llm.base import LLMProviderAPIError, LLMProviderRateLimitError
from stacks_agent.services.wallet import WalletConfigurationError


@pytest.mark.parametrize(
    "exc,status,message",
    [
        (LLMProviderRateLimitError("429"), 429, RATE_LIMIT_MESSAGE),
        (WalletConfigurationError("WALLET_MNEMONIC environment variable is not set."), 500,
         "WALLET_MNEMONIC environment variable is not set."),
        (LLMConfigurationError("No API key configured for provider: openai"), 500,
         "No API key configured for provider: openai"),
        (LLMProviderAPIError("bad gateway"), 502, "The AI service failed to respond: bad gateway"),
        (RuntimeError("secret internals"), 500, "Chat processing failed"),
    ],
)
def test_describe_error(exc, status, message):
    assert describe_error(exc) == (status, message)


async def _chunks(*items):
    for item in items:
        if isinstance(item, Exception):
            raise item
        yield item


@pytest.mark.asyncio
async def test_resume_stream_replays_first_chunk():
    collected = [chunk async for chunk in resume_stream("one", _chunks(STEP_SEPARATOR + "two"))]

    assert "".join(collected) == "one\n\ntwo"


@pytest.mark.asyncio
async def test_resume_stream_reports_late_failures_in_band():
    collected = [
        chunk async for chunk in resume_stream("partial", _chunks(LLMProviderRateLimitError("slow")))
    ]

    assert collected == ["partial", STEP_SEPARATOR + RATE_LIMIT_MESSAGE]


def test_parse_tool_arguments_reads_json_values():
    assert parse_tool_arguments(["cycle=3", "address=SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7"]) == {
        "cycle": 3,
        "address": "SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7",
    }
    with pytest.raises(ValueError):
        parse_tool_arguments(["cycle"])


def test_cli_parser_commands():
    args = build_parser().parse_args(["tool", "get_sbtc_rewards_by_cycle", "cycle=3"])

    assert args.command == "tool"
    assert args.name == "get_sbtc_rewards_by_cycle"
    assert args.arguments == ["cycle=3"]
    assert build_parser().parse_args(["chat", "--model", "gpt-4o"]).model == "gpt-4o"
