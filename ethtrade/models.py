from decimal import Decimal
from enum import Enum
from fractions import Fraction
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_serializer, model_validator

from ethtrade.config import NATIVE_ADDRESS
from ethtrade.errors import InsufficientLiquidity, SimulationReverted
from ethtrade.services.numeric import format_decimal, parse_decimal


class Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class TokenDescriptor(Frozen):
    address: str
    symbol: str
    name: str
    decimals: int = Field(ge=0, le=255)

    @property
    def is_native(self) -> bool:
        return self.address.lower() == NATIVE_ADDRESS.lower()

    def same_as(self, other: "TokenDescriptor") -> bool:
        return self.address.lower() == other.address.lower()


NATIVE_ETH = TokenDescriptor(address=NATIVE_ADDRESS, symbol="ETH", name="Ether", decimals=18)


class Amount(Frozen):
    value: int = Field(ge=0)  # Smallest unit of `token`
    token: TokenDescriptor

    @classmethod
    def parse(cls, text: str, token: TokenDescriptor) -> "Amount":
        return cls(value=parse_decimal(text, token.decimals), token=token)

    @computed_field
    @property
    def formatted(self) -> str:
        return format_decimal(self.value, self.token.decimals)

    @field_serializer("value")
    def _serialize_value(self, value: int) -> str:
        return str(value)


class PoolReserves(Frozen):
    pool_address: str
    token_a: TokenDescriptor
    token_b: TokenDescriptor
    reserve_a: int = Field(ge=0)
    reserve_b: int = Field(ge=0)
    block_timestamp_last: int  # Block time of the pool's last reserve update

    @field_serializer("reserve_a", "reserve_b")
    def _serialize_reserve(self, value: int) -> str:
        return str(value)

    def flipped(self) -> "PoolReserves":
        return PoolReserves(
            pool_address=self.pool_address,
            token_a=self.token_b,
            token_b=self.token_a,
            reserve_a=self.reserve_b,
            reserve_b=self.reserve_a,
            block_timestamp_last=self.block_timestamp_last
        )

    def spot_price(self) -> Fraction:
        """Exact price of one whole token_a expressed in token_b"""
        if self.reserve_a == 0 or self.reserve_b == 0:
            raise InsufficientLiquidity(f"Pool {self.pool_address} has empty reserves")
        return Fraction(
            self.reserve_b * 10 ** self.token_a.decimals,
            self.reserve_a * 10 ** self.token_b.decimals
        )


class Route(Frozen):
    tokens: Tuple[TokenDescriptor, ...]  # token_in, [bridge], token_out
    hops: Tuple[PoolReserves, ...]  # hops[i] is normalized to (tokens[i], tokens[i + 1])

    @model_validator(mode="after")
    def _check_shape(self) -> "Route":
        if not 1 <= len(self.hops) <= 2:
            raise ValueError("a route has one or two hops")
        if len(self.tokens) != len(self.hops) + 1:
            raise ValueError("a route needs exactly one more token than hops")
        for i, hop in enumerate(self.hops):
            if not (hop.token_a.same_as(self.tokens[i]) and hop.token_b.same_as(self.tokens[i + 1])):
                raise ValueError(f"hop {i} does not connect {self.tokens[i].symbol} to {self.tokens[i + 1].symbol}")
        return self

    @property
    def token_in(self) -> TokenDescriptor:
        return self.tokens[0]

    @property
    def token_out(self) -> TokenDescriptor:
        return self.tokens[-1]

    @property
    def path(self) -> Tuple[str, ...]:
        return tuple(token.address for token in self.tokens)

    @property
    def pools(self) -> Tuple[str, ...]:
        return tuple(hop.pool_address for hop in self.hops)


class Quote(Frozen):
    amount_in: Amount
    amount_out: Amount
    minimum_out: Amount
    hop_amounts: Tuple[Amount, ...]  # Input followed by every hop's output
    price_impact: Decimal  # 0.01 = 1%
    slippage_bps: int
    forced: bool = False
    route: Route

    @field_serializer("price_impact")
    def _serialize_impact(self, value: Decimal) -> str:
        return format(value, "f")


class RevertCode(str, Enum):
    TRANSFER_FROM_FAILED = "TRANSFER_FROM_FAILED"
    INSUFFICIENT_ALLOWANCE = "INSUFFICIENT_ALLOWANCE"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    EXPIRED_DEADLINE = "EXPIRED_DEADLINE"
    INSUFFICIENT_OUTPUT_AMOUNT = "INSUFFICIENT_OUTPUT_AMOUNT"
    INSUFFICIENT_LIQUIDITY = "INSUFFICIENT_LIQUIDITY"
    PANIC = "PANIC"
    UNKNOWN = "UNKNOWN"


class RevertReason(Frozen):
    code: RevertCode
    message: str
    selector: Optional[str] = None
    data: str = "0x"  # Original revert payload


class SimulationOutcome(Frozen):
    success: bool
    sender: str
    quote: Quote
    gas_estimate: Optional[int] = None
    gas_estimate_warning: bool = False
    revert: Optional[RevertReason] = None
    simulated_output: Optional[int] = None
    output_matches_quote: Optional[bool] = None

    @property
    def route(self) -> Route:
        return self.quote.route

    def raise_for_revert(self):
        if not self.success and self.revert is not None:
            raise SimulationReverted(self.revert)


class BalanceRecord(Frozen):
    address: str
    token: TokenDescriptor
    balance: int  # Raw amount in the token's smallest unit
    decimals: int
    formatted_balance: str

    @field_serializer("balance")
    def _serialize_balance(self, value: int) -> str:
        return str(value)


class TokenPrice(Frozen):
    token: TokenDescriptor
    quote_currency: str
    price: str
    pool: Optional[str]  # Token/WETH pool the price was read from
    pools: Tuple[str, ...]
    liquidity_eth: Optional[str] = None


class SwapRoute(Frozen):
    protocol: str = "Uniswap V2"
    path: Tuple[str, ...]  # Token addresses in the path
    pools: Tuple[str, ...]  # Pool addresses to use


class SwapResult(Frozen):
    from_token: TokenDescriptor
    to_token: TokenDescriptor
    input_amount: str
    input_amount_raw: str
    estimated_output: str
    estimated_output_raw: str
    minimum_output: str
    minimum_output_raw: str
    price_impact: str
    slippage_bps: int
    route: SwapRoute
    simulation_success: bool
    sender: str
    gas_estimate: Optional[int] = None
    gas_estimate_warning: bool = False
    revert_reason: Optional[str] = None
    revert_code: Optional[str] = None
    revert_data: Optional[str] = None
    simulated_output: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: SimulationOutcome) -> "SwapResult":
        quote = outcome.quote
        revert = outcome.revert
        simulated = None
        if outcome.simulated_output is not None:
            simulated = format_decimal(outcome.simulated_output, quote.amount_out.token.decimals)
        return cls(
            from_token=quote.route.token_in,
            to_token=quote.route.token_out,
            input_amount=quote.amount_in.formatted,
            input_amount_raw=str(quote.amount_in.value),
            estimated_output=quote.amount_out.formatted,
            estimated_output_raw=str(quote.amount_out.value),
            minimum_output=quote.minimum_out.formatted,
            minimum_output_raw=str(quote.minimum_out.value),
            price_impact=format(quote.price_impact, "f"),
            slippage_bps=quote.slippage_bps,
            route=SwapRoute(path=quote.route.path, pools=quote.route.pools),
            simulation_success=outcome.success,
            sender=outcome.sender,
            gas_estimate=outcome.gas_estimate,
            gas_estimate_warning=outcome.gas_estimate_warning,
            revert_reason=revert.message if revert else None,
            revert_code=revert.code.value if revert else None,
            revert_data=revert.data if revert else None,
            simulated_output=simulated
        )
