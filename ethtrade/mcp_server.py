"""
Ethereum trading MCP server (stdio).

Tools: get_balance, get_token_price, swap_tokens. Each returns a JSON
document; engine failures come back as {"error": {"kind", "message", ...}}.
"""
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Dict, Optional

from mcp.server.fastmcp import Context, FastMCP
from pydantic import BaseModel

from ethtrade.config import Settings, configure_logging
from ethtrade.errors import TradingError
from ethtrade.services.trading import TradingService, build_trading_service

logger = logging.getLogger(__name__)


async def run_tool(name: str, call: Awaitable[BaseModel]) -> Dict[str, Any]:
    """Await a tool call and shape the result, or the failure, as a JSON object"""
    try:
        result = await call
    except TradingError as e:
        logger.warning(f"{name} failed: {e.kind}: {e.message}")
        return {"error": e.to_dict()}
    except Exception as e:
        logger.error(f"{name} failed unexpectedly: {str(e)}", exc_info=True)
        return {"error": {"kind": "Unknown", "message": str(e)}}
    return result.model_dump(mode="json")


def _dumps(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, indent=2)


@asynccontextmanager
async def trading_lifespan(server: FastMCP) -> AsyncIterator[TradingService]:
    settings = Settings()
    # basicConfig writes to stderr; stdout carries the protocol
    configure_logging(settings)
    service = build_trading_service(settings)
    logger.info(f"Ethereum trading MCP server ready (chain {settings.CHAIN_ID}, test mode {settings.TEST_MODE})")
    try:
        yield service
    finally:
        await service.close()
        logger.info("Ethereum trading MCP server shut down")


mcp = FastMCP(
    "ethereum-trading",
    instructions=(
        "Ethereum trading tools: get_balance (ETH and ERC-20 balances), "
        "get_token_price (Uniswap V2 spot price in USD or ETH) and "
        "swap_tokens (Uniswap V2 quote plus a simulated swap; nothing is broadcast)."
    ),
    lifespan=trading_lifespan
)


def _service(ctx: Context) -> TradingService:
    return ctx.request_context.lifespan_context


@mcp.tool()
async def get_balance(ctx: Context, address: str, token_address: Optional[str] = None) -> str:
    """Get the ETH or ERC-20 token balance of an address.

    Args:
        address: Wallet address to query
        token_address: Token symbol or contract address; omit (or "ETH") for the native balance
    """
    return _dumps(await run_tool("get_balance", _service(ctx).get_balance(address, token_address)))


@mcp.tool()
async def get_token_price(ctx: Context, token_address: str, quote_in: str = "USD") -> str:
    """Get the current Uniswap V2 spot price of a token.

    Args:
        token_address: Token symbol or contract address
        quote_in: "USD" or "ETH"
    """
    return _dumps(await run_tool("get_token_price", _service(ctx).get_token_price(token_address, quote_in)))


@mcp.tool()
async def swap_tokens(
        ctx: Context,
        from_token: str,
        to_token: str,
        amount: str,
        slippage_bps: Optional[int] = None,
        wallet_address: Optional[str] = None
) -> str:
    """Quote a Uniswap V2 swap and simulate it without broadcasting.

    Args:
        from_token: Symbol or address of the token to sell
        to_token: Symbol or address of the token to buy
        amount: Amount of from_token as a decimal string, e.g. "1.5"
        slippage_bps: Slippage tolerance in basis points (50 = 0.5%)
        wallet_address: Address to simulate from
    """
    service = _service(ctx)
    return _dumps(await run_tool(
        "swap_tokens",
        service.swap_tokens(from_token, to_token, amount, slippage_bps, wallet_address)
    ))


async def main():
    await mcp.run_stdio_async()


if __name__ == "__main__":
    asyncio.run(main())
