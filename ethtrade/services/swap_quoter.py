import logging
from decimal import Decimal
from fractions import Fraction
from typing import List

from ethtrade.config import Settings
from ethtrade.errors import InsufficientLiquidity, InvalidAmount, InvalidSlippage
from ethtrade.models import Amount, Quote, Route
from ethtrade.services.numeric import format_ratio, mul_div

logger = logging.getLogger(__name__)

BPS = 10000


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int) -> int:
    """
    Output of a single constant-product swap, floored like the pair contract.

    out = reserve_out * in * (10000 - fee) / (reserve_in * 10000 + in * (10000 - fee))
    """
    amount_in_with_fee = amount_in * (BPS - fee_bps)
    return mul_div(reserve_out, amount_in_with_fee, reserve_in * BPS + amount_in_with_fee)


def validate_slippage(slippage_bps: int) -> int:
    if isinstance(slippage_bps, bool) or not isinstance(slippage_bps, int):
        raise InvalidSlippage(f"Slippage must be an integer number of basis points, got {slippage_bps!r}")
    if not 0 <= slippage_bps < BPS:
        raise InvalidSlippage(
            f"Slippage {slippage_bps} bps is outside [0, {BPS})",
            slippage_bps=slippage_bps
        )
    return slippage_bps


class SwapQuoter:
    def __init__(self, settings: Settings):
        self.fee_bps = settings.FEE_BPS
        self.max_input_reserve_bps = settings.MAX_INPUT_RESERVE_BPS

    def quote(self, route: Route, amount_in: Amount, slippage_bps: int, force: bool = False) -> Quote:
        """
        Walk the route hop by hop with the pair formula.

        Args:
            route: Resolved route with pre-trade reserves
            amount_in: Input amount in route.token_in
            slippage_bps: Tolerance used for the minimum output
            force: Skip the liquidity guard, for diagnostic quotes

        Returns:
            Quote with expected output, minimum output and price impact
        """
        validate_slippage(slippage_bps)
        if not amount_in.token.same_as(route.token_in):
            raise InvalidAmount(
                f"Amount is in {amount_in.token.symbol}, route starts at {route.token_in.symbol}"
            )
        if amount_in.value == 0:
            raise InvalidAmount("Input amount must be greater than zero")

        amounts: List[int] = [amount_in.value]
        spot_output = Fraction(amount_in.value)

        for hop in route.hops:
            current = amounts[-1]
            reserve_in, reserve_out = hop.reserve_a, hop.reserve_b
            if reserve_in == 0 or reserve_out == 0:
                raise InsufficientLiquidity(
                    f"Pool {hop.pool_address} has no liquidity",
                    pool=hop.pool_address
                )
            if not force and current * BPS > reserve_in * self.max_input_reserve_bps:
                raise InsufficientLiquidity(
                    f"Input of {current} {hop.token_a.symbol} is too large for pool {hop.pool_address} "
                    f"(reserve {reserve_in})",
                    pool=hop.pool_address
                )

            output = get_amount_out(current, reserve_in, reserve_out, self.fee_bps)
            if output == 0 and not force:
                raise InsufficientLiquidity(
                    f"Output of pool {hop.pool_address} rounds down to zero",
                    pool=hop.pool_address
                )
            amounts.append(output)
            spot_output *= Fraction(reserve_out, reserve_in)

        # Impact against the pre-trade spot rate, fees included
        impact = 1 - Fraction(amounts[-1]) / spot_output
        price_impact = Decimal(format_ratio(impact.numerator, impact.denominator))

        token_out = route.token_out
        minimum_out = mul_div(amounts[-1], BPS - slippage_bps, BPS)
        tokens = route.tokens

        logger.debug(
            f"Quoted {amount_in.value} {route.token_in.symbol} -> {amounts[-1]} {token_out.symbol} "
            f"over {len(route.hops)} hop(s), impact {price_impact}"
        )

        return Quote(
            amount_in=amount_in,
            amount_out=Amount(value=amounts[-1], token=token_out),
            minimum_out=Amount(value=minimum_out, token=token_out),
            hop_amounts=tuple(Amount(value=value, token=tokens[i]) for i, value in enumerate(amounts)),
            price_impact=price_impact,
            slippage_bps=slippage_bps,
            forced=force,
            route=route
        )
