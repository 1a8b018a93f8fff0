import logging
from typing import List, Optional

import strawberry
from graphql import GraphQLError
from strawberry.types import Info

from ethtrade import models
from ethtrade.errors import TradingError

logger = logging.getLogger(__name__)


@strawberry.type
class Token:
    """GraphQL Token type"""
    address: str
    symbol: str
    name: str
    decimals: int

    @classmethod
    def from_model(cls, token: models.TokenDescriptor) -> "Token":
        return cls(address=token.address, symbol=token.symbol, name=token.name, decimals=token.decimals)


@strawberry.type
class Balance:
    address: str
    token: Token
    balance: str
    decimals: int
    formatted_balance: str = strawberry.field(name="formattedBalance")

    @classmethod
    def from_model(cls, record: models.BalanceRecord) -> "Balance":
        return cls(
            address=record.address,
            token=Token.from_model(record.token),
            balance=str(record.balance),
            decimals=record.decimals,
            formatted_balance=record.formatted_balance
        )


@strawberry.type
class TokenPrice:
    token: Token
    quote_currency: str = strawberry.field(name="quoteCurrency")
    price: str
    pool: Optional[str]
    pools: List[str]
    liquidity_eth: Optional[str] = strawberry.field(name="liquidityEth")

    @classmethod
    def from_model(cls, price: models.TokenPrice) -> "TokenPrice":
        return cls(
            token=Token.from_model(price.token),
            quote_currency=price.quote_currency,
            price=price.price,
            pool=price.pool,
            pools=list(price.pools),
            liquidity_eth=price.liquidity_eth
        )


@strawberry.type
class SwapRoute:
    protocol: str
    path: List[str]
    pools: List[str]


@strawberry.type
class SwapResult:
    from_token: Token = strawberry.field(name="fromToken")
    to_token: Token = strawberry.field(name="toToken")
    input_amount: str = strawberry.field(name="inputAmount")
    input_amount_raw: str = strawberry.field(name="inputAmountRaw")
    estimated_output: str = strawberry.field(name="estimatedOutput")
    estimated_output_raw: str = strawberry.field(name="estimatedOutputRaw")
    minimum_output: str = strawberry.field(name="minimumOutput")
    minimum_output_raw: str = strawberry.field(name="minimumOutputRaw")
    price_impact: str = strawberry.field(name="priceImpact")
    slippage_bps: int = strawberry.field(name="slippageBps")
    route: SwapRoute
    simulation_success: bool = strawberry.field(name="simulationSuccess")
    sender: str
    gas_estimate: Optional[str] = strawberry.field(name="gasEstimate")
    gas_estimate_warning: bool = strawberry.field(name="gasEstimateWarning")
    revert_reason: Optional[str] = strawberry.field(name="revertReason")
    revert_code: Optional[str] = strawberry.field(name="revertCode")
    revert_data: Optional[str] = strawberry.field(name="revertData")
    simulated_output: Optional[str] = strawberry.field(name="simulatedOutput")

    @classmethod
    def from_model(cls, result: models.SwapResult) -> "SwapResult":
        return cls(
            from_token=Token.from_model(result.from_token),
            to_token=Token.from_model(result.to_token),
            input_amount=result.input_amount,
            input_amount_raw=result.input_amount_raw,
            estimated_output=result.estimated_output,
            estimated_output_raw=result.estimated_output_raw,
            minimum_output=result.minimum_output,
            minimum_output_raw=result.minimum_output_raw,
            price_impact=result.price_impact,
            slippage_bps=result.slippage_bps,
            route=SwapRoute(
                protocol=result.route.protocol,
                path=list(result.route.path),
                pools=list(result.route.pools)
            ),
            simulation_success=result.simulation_success,
            sender=result.sender,
            # GraphQL Int is 32-bit
            gas_estimate=str(result.gas_estimate) if result.gas_estimate is not None else None,
            gas_estimate_warning=result.gas_estimate_warning,
            revert_reason=result.revert_reason,
            revert_code=result.revert_code,
            revert_data=result.revert_data,
            simulated_output=result.simulated_output
        )


def _graphql_error(field: str, error: TradingError) -> GraphQLError:
    logger.warning(f"{field} failed: {error.kind}: {error.message}")
    return GraphQLError(error.message, extensions=error.to_dict())


@strawberry.type
class Query:
    @strawberry.field
    async def balance(self, info: Info, address: str, token: Optional[str] = None) -> Balance:
        trading = info.context["trading"]
        try:
            return Balance.from_model(await trading.get_balance(address, token))
        except TradingError as e:
            raise _graphql_error("balance", e)

    @strawberry.field
    async def token_price(self, info: Info, token: str, quote_in: str = "USD") -> TokenPrice:
        trading = info.context["trading"]
        try:
            return TokenPrice.from_model(await trading.get_token_price(token, quote_in))
        except TradingError as e:
            raise _graphql_error("tokenPrice", e)

    @strawberry.field
    async def swap_tokens(
            self,
            info: Info,
            from_token: str,
            to_token: str,
            amount: str,
            slippage_bps: Optional[int] = None,
            wallet_address: Optional[str] = None
    ) -> SwapResult:
        trading = info.context["trading"]
        try:
            result = await trading.swap_tokens(from_token, to_token, amount, slippage_bps, wallet_address)
        except TradingError as e:
            raise _graphql_error("swapTokens", e)
        return SwapResult.from_model(result)

    @strawberry.field
    def available_tokens(self, info: Info) -> List[Token]:
        trading = info.context["trading"]
        return [Token.from_model(token) for token in trading.available_tokens()]


# Create the schema
schema = strawberry.Schema(query=Query)
