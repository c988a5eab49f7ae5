"""
Tool Registry and Executor for LLM-driven tool calling.

The catalog is closed: every tool name is a member of ``ToolName`` and each
tool declares its parameters explicitly. Arguments supplied by the model are
validated against that declaration before the handler runs, and every
invocation goes through one capture step that turns failures into a
``ToolResult`` carrying ``{"error": message}``.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from ...providers.llm.base import (
    ToolArgumentError,
    ToolCall,
    ToolDefinition,
    ToolParameter,
    ToolParameterType,
    ToolResult,
)
from ...services import alex as alex_service
from ...services import sbtc as sbtc_service
from ...services import velar as velar_service
from ...services import wallet as wallet_service
from ...stacks.c32 import C32Error, c32_address, c32_address_decode
from .context import ToolContext


class ToolName(str, Enum):
    GET_WALLET_ADDRESS = "get_wallet_address"
    GET_STX_BALANCE = "get_stx_balance"
    GET_BALANCE = "get_balance"
    GET_TOKEN_BALANCES = "get_token_balances"
    GET_RECENT_TRANSACTIONS = "get_recent_transactions"
    GET_LAST_TRANSACTIONS = "get_last_transactions"
    GET_VELAR_TOKENS = "get_velar_tokens"
    GET_VELAR_POOLS = "get_velar_pools"
    GET_ALEX_FEE_RATES = "get_alex_fee_rates"
    GET_ALEX_AVAILABLE_TOKENS = "get_alex_available_tokens"
    GET_ALEX_TOKEN_PRICES = "get_alex_token_prices"
    IS_SBTC_ENROLLED = "is_sbtc_enrolled"
    GET_SBTC_CURRENT_CYCLE = "get_sbtc_current_cycle"
    GET_SBTC_REWARD_ADDRESS = "get_sbtc_reward_address"
    GET_SBTC_REWARDS_BY_CYCLE = "get_sbtc_rewards_by_cycle"
    ENROLL_SBTC_INCENTIVES = "enroll_sbtc_incentives"

    @classmethod
    def parse(cls, name: Any) -> Optional["ToolName"]:
        """Map a model-supplied name onto the enumeration, or ``None``."""
        try:
            return cls(name)
        except ValueError:
            return None


ToolHandler = Callable[..., Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class RegisteredTool:
    """A tool registered in the registry with its definition and handler."""
    name: ToolName
    definition: ToolDefinition
    handler: ToolHandler


# =============================================================================
# Handlers
# =============================================================================

def _resolve_address(ctx: ToolContext, address: Optional[str]) -> str:
    """Default to the connected wallet; reject anything that is not a Stacks address.

    Lowercase and look-alike characters decode, so the canonical encoding is
    returned rather than the raw input.
    """
    if not address:
        return ctx.wallet.address
    try:
        return c32_address(*c32_address_decode(address.strip()))
    except C32Error as e:
        raise ToolArgumentError(f"Invalid Stacks address: {address}") from e


async def _get_wallet_address(ctx: ToolContext) -> Dict[str, Any]:
    address = ctx.wallet.address
    return {"address": address, "formatted": f"Connected wallet address: {address}"}


async def _get_stx_balance(ctx: ToolContext, address: Optional[str] = None) -> Dict[str, Any]:
    return await wallet_service.get_stx_balance(_resolve_address(ctx, address), hiro=ctx.hiro)


async def _get_token_balances(ctx: ToolContext, address: Optional[str] = None) -> Dict[str, Any]:
    return await wallet_service.get_token_balances(_resolve_address(ctx, address), hiro=ctx.hiro)


async def _get_recent_transactions(
    ctx: ToolContext,
    address: Optional[str] = None,
    limit: int = wallet_service.DEFAULT_TRANSACTION_LIMIT,
) -> Dict[str, Any]:
    return await wallet_service.get_recent_transactions(
        _resolve_address(ctx, address), limit, hiro=ctx.hiro
    )


async def _get_velar_tokens(ctx: ToolContext, symbol: Optional[str] = None) -> Dict[str, Any]:
    return await velar_service.get_velar_tokens(symbol, velar=ctx.velar)


async def _get_velar_pools(
    ctx: ToolContext, token0: Optional[str] = None, token1: Optional[str] = None
) -> Dict[str, Any]:
    return await velar_service.get_velar_pools(token0, token1, velar=ctx.velar)


async def _get_alex_fee_rates(ctx: ToolContext) -> Dict[str, Any]:
    return await alex_service.get_alex_fee_rates(hiro=ctx.hiro, settings=ctx.settings)


async def _get_alex_available_tokens(ctx: ToolContext) -> Dict[str, Any]:
    return await alex_service.get_alex_available_tokens(alex=ctx.alex)


async def _get_alex_token_prices(ctx: ToolContext) -> Dict[str, Any]:
    return await alex_service.get_alex_token_prices(alex=ctx.alex)


async def _is_sbtc_enrolled(ctx: ToolContext, address: Optional[str] = None) -> Dict[str, Any]:
    return await sbtc_service.is_sbtc_enrolled(
        _resolve_address(ctx, address), hiro=ctx.hiro, settings=ctx.settings
    )


async def _get_sbtc_current_cycle(ctx: ToolContext) -> Dict[str, Any]:
    return await sbtc_service.get_sbtc_current_cycle(
        ctx.wallet.address, hiro=ctx.hiro, settings=ctx.settings
    )


async def _get_sbtc_reward_address(ctx: ToolContext, address: Optional[str] = None) -> Dict[str, Any]:
    return await sbtc_service.get_sbtc_reward_address(
        _resolve_address(ctx, address), hiro=ctx.hiro, settings=ctx.settings
    )


async def _get_sbtc_rewards_by_cycle(
    ctx: ToolContext, cycle: int, address: Optional[str] = None
) -> Dict[str, Any]:
    return await sbtc_service.get_sbtc_rewards_by_cycle(
        cycle, _resolve_address(ctx, address), hiro=ctx.hiro, settings=ctx.settings
    )


async def _enroll_sbtc_incentives(ctx: ToolContext) -> Dict[str, Any]:
    return await sbtc_service.enroll_sbtc_incentives(
        ctx.wallet.require_account(), hiro=ctx.hiro, settings=ctx.settings
    )


# =============================================================================
# Catalog
# =============================================================================

def _address_parameter(purpose: str) -> ToolParameter:
    return ToolParameter(
        name="address",
        type=ToolParameterType.STRING,
        description=(
            f"The Stacks address to {purpose}. "
            "If not provided, the connected wallet address will be used."
        ),
        required=False,
    )


def _transactions_parameters() -> List[ToolParameter]:
    return [
        _address_parameter("get transactions for"),
        ToolParameter(
            name="limit",
            type=ToolParameterType.INTEGER,
            description="Maximum number of transactions to return",
            required=False,
            default=wallet_service.DEFAULT_TRANSACTION_LIMIT,
            minimum=1,
        ),
    ]


def _tool(name: ToolName, description: str, handler: ToolHandler,
          parameters: Optional[List[ToolParameter]] = None) -> RegisteredTool:
    return RegisteredTool(
        name=name,
        definition=ToolDefinition(name=name.value, description=description, parameters=parameters or []),
        handler=handler,
    )


def _default_tools() -> List[RegisteredTool]:
    return [
        _tool(
            ToolName.GET_WALLET_ADDRESS,
            "Get the connected wallet address.",
            _get_wallet_address,
        ),
        _tool(
            ToolName.GET_STX_BALANCE,
            (
                "Get the STX balance (total, locked and available) of a wallet address. "
                "If no address is provided, the connected wallet will be used."
            ),
            _get_stx_balance,
            [_address_parameter("check the balance for")],
        ),
        _tool(
            ToolName.GET_BALANCE,
            "Get the balance of a wallet address. If no address is provided, the connected wallet will be used.",
            _get_stx_balance,
            [_address_parameter("check the balance for")],
        ),
        _tool(
            ToolName.GET_TOKEN_BALANCES,
            (
                "Get the fungible token balances of a wallet address. "
                "If no address is provided, the connected wallet will be used."
            ),
            _get_token_balances,
            [_address_parameter("check token balances for")],
        ),
        _tool(
            ToolName.GET_RECENT_TRANSACTIONS,
            (
                "Get the most recent transactions of a wallet address (10 unless a limit is given). "
                "If no address is provided, the connected wallet will be used."
            ),
            _get_recent_transactions,
            _transactions_parameters(),
        ),
        _tool(
            ToolName.GET_LAST_TRANSACTIONS,
            (
                "Get the last transactions of a wallet address (10 unless a limit is given). "
                "If no address is provided, the connected wallet will be used."
            ),
            _get_recent_transactions,
            _transactions_parameters(),
        ),
        _tool(
            ToolName.GET_VELAR_TOKENS,
            "Get information about tokens listed on the Velar DEX, optionally filtered by symbol.",
            _get_velar_tokens,
            [
                ToolParameter(
                    name="symbol",
                    type=ToolParameterType.STRING,
                    description="Token symbol to look up (e.g. 'VELAR'). Omit to list all tokens.",
                    required=False,
                ),
            ],
        ),
        _tool(
            ToolName.GET_VELAR_POOLS,
            (
                "Get information about liquidity pools on the Velar DEX. "
                "Give both tokens for a specific pair, one token to find its pools, or none for all pools."
            ),
            _get_velar_pools,
            [
                ToolParameter(
                    name="token0",
                    type=ToolParameterType.STRING,
                    description="First token symbol of the pair",
                    required=False,
                ),
                ToolParameter(
                    name="token1",
                    type=ToolParameterType.STRING,
                    description="Second token symbol of the pair",
                    required=False,
                ),
            ],
        ),
        _tool(
            ToolName.GET_ALEX_FEE_RATES,
            "Get the swap fee rates between STX and ALEX on the ALEX protocol.",
            _get_alex_fee_rates,
        ),
        _tool(
            ToolName.GET_ALEX_AVAILABLE_TOKENS,
            "Get the tokens available for swapping on the ALEX protocol.",
            _get_alex_available_tokens,
        ),
        _tool(
            ToolName.GET_ALEX_TOKEN_PRICES,
            "Get the latest USD token prices from the ALEX protocol.",
            _get_alex_token_prices,
        ),
        _tool(
            ToolName.IS_SBTC_ENROLLED,
            (
                "Check whether a wallet is enrolled in sBTC incentives for the current and the next cycle. "
                "If no address is provided, the connected wallet will be used."
            ),
            _is_sbtc_enrolled,
            [_address_parameter("check enrollment for")],
        ),
        _tool(
            ToolName.GET_SBTC_CURRENT_CYCLE,
            "Get the current sBTC rewards cycle ID.",
            _get_sbtc_current_cycle,
        ),
        _tool(
            ToolName.GET_SBTC_REWARD_ADDRESS,
            (
                "Get the latest sBTC reward address registered for a wallet. "
                "If no address is provided, the connected wallet will be used."
            ),
            _get_sbtc_reward_address,
            [_address_parameter("look up the reward address for")],
        ),
        _tool(
            ToolName.GET_SBTC_REWARDS_BY_CYCLE,
            (
                "Get the sBTC rewards earned by a wallet in a given cycle. "
                "If no address is provided, the connected wallet will be used."
            ),
            _get_sbtc_rewards_by_cycle,
            [
                ToolParameter(
                    name="cycle",
                    type=ToolParameterType.INTEGER,
                    description="The rewards cycle ID",
                    required=True,
                    minimum=0,
                ),
                _address_parameter("look up rewards for"),
            ],
        ),
        _tool(
            ToolName.ENROLL_SBTC_INCENTIVES,
            (
                "Enroll the connected wallet in sBTC incentives by signing and broadcasting a transaction. "
                "Only use this when the user explicitly asks to enroll."
            ),
            _enroll_sbtc_incentives,
        ),
    ]


class ToolRegistry:
    """
    Read-only catalog of the tools the LLM can call.

    Built once; lookups go through ``ToolName`` so names outside the catalog
    never reach the handler table.
    """

    def __init__(self, tools: Iterable[RegisteredTool]):
        table: Dict[ToolName, RegisteredTool] = {}
        for tool in tools:
            if tool.name in table:
                raise ValueError(f"Duplicate tool name: {tool.name.value}")
            table[tool.name] = tool
        self._tools: Mapping[ToolName, RegisteredTool] = MappingProxyType(table)

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> List[str]:
        return [name.value for name in self._tools]

    def get_definitions(self) -> List[ToolDefinition]:
        """Get all tool definitions for passing to the LLM."""
        return [tool.definition for tool in self._tools.values()]

    def get_tool(self, name: Any) -> Optional[RegisteredTool]:
        """Get a registered tool by name."""
        tool_name = ToolName.parse(name)
        if tool_name is None:
            return None
        return self._tools.get(tool_name)

    def has_tool(self, name: Any) -> bool:
        """Check if a tool is registered."""
        return self.get_tool(name) is not None


@lru_cache(maxsize=1)
def get_tool_registry() -> ToolRegistry:
    """Process-wide registry with the default catalog."""
    return ToolRegistry(_default_tools())


class ToolExecutor:
    """
    Executes tool calls requested by the LLM against one request's context.

    Supports concurrent execution of the calls of a single step; results keep
    the order the calls were requested in.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        context: ToolContext,
        logger: Optional[logging.Logger] = None,
    ):
        self.registry = registry
        self.context = context
        self.logger = logger or logging.getLogger(__name__)

    async def _capture(self, tool_call: ToolCall, invoke: Callable[[], Awaitable[Any]]) -> ToolResult:
        """Run ``invoke`` and fold any failure into the tool result."""
        try:
            result = await invoke()
        except ToolArgumentError as e:
            self.logger.warning(f"Rejected arguments for {tool_call.name}: {e}")
            return ToolResult(tool_call_id=tool_call.id, error=str(e))
        except Exception as e:
            self.logger.error(f"Tool execution error for {tool_call.name}: {e}")
            return ToolResult(tool_call_id=tool_call.id, error=str(e) or e.__class__.__name__)
        return ToolResult(tool_call_id=tool_call.id, result=result)

    async def execute_single(self, tool_call: ToolCall) -> ToolResult:
        """Execute a single tool call and return the result."""
        tool = self.registry.get_tool(tool_call.name)
        if tool is None:
            return ToolResult(tool_call_id=tool_call.id, error=f"Tool {tool_call.name} not found")

        async def invoke() -> Any:
            if tool_call.argument_error:
                raise ToolArgumentError(tool_call.argument_error)
            arguments = tool.definition.validate_arguments(tool_call.arguments)
            return await tool.handler(self.context, **arguments)

        self.logger.info(f"Executing tool {tool.name.value}")
        return await self._capture(tool_call, invoke)

    async def execute_parallel(self, tool_calls: List[ToolCall]) -> List[ToolResult]:
        """Execute multiple tool calls concurrently, results in request order."""
        if not tool_calls:
            return []
        return list(await asyncio.gather(*(self.execute_single(tc) for tc in tool_calls)))
