import logging
from fractions import Fraction
from typing import List

from ethtrade.config import Settings
from ethtrade.errors import InvalidQuoteCurrency, PoolNotFound
from ethtrade.models import PoolReserves, TokenDescriptor, TokenPrice
from ethtrade.services.numeric import format_decimal, format_ratio
from ethtrade.services.reserve_oracle import PoolReserveOracle
from ethtrade.services.token_registry import TokenRegistry

logger = logging.getLogger(__name__)

QUOTE_CURRENCIES = ("USD", "ETH")


class PriceService:
    def __init__(self, settings: Settings, registry: TokenRegistry, oracle: PoolReserveOracle):
        self.settings = settings
        self.registry = registry
        self.oracle = oracle

    async def _pool(self, token: TokenDescriptor, quote_token: TokenDescriptor) -> PoolReserves:
        pool = await self.oracle.get_reserves(token, quote_token)
        if pool is None:
            raise PoolNotFound(
                f"No Uniswap V2 pool with liquidity for {token.symbol}/{quote_token.symbol}",
                token_a=token.address,
                token_b=quote_token.address
            )
        return pool

    async def get_token_price(self, token: str, quote_in: str = "USD") -> TokenPrice:
        """
        Spot price of `token` read from Uniswap V2 reserves.

        The ETH price comes from the token/WETH pool. The USD price multiplies
        it by the WETH/USD-reference pool price.
        """
        currency = (quote_in or "USD").strip().upper()
        if currency not in QUOTE_CURRENCIES:
            raise InvalidQuoteCurrency(
                f"Unsupported quote currency {quote_in}; use one of {', '.join(QUOTE_CURRENCIES)}",
                quote_in=quote_in
            )
        self.registry.check(token)

        descriptor = await self.registry.resolve(token)
        weth = await self.registry.resolve(self.settings.WETH_ADDRESS)

        pools: List[PoolReserves] = []
        liquidity_eth = None
        if descriptor.same_as(weth):
            eth_price = Fraction(1)
        else:
            eth_pool = await self._pool(descriptor, weth)
            pools.append(eth_pool)
            eth_price = eth_pool.spot_price()
            liquidity_eth = format_decimal(2 * eth_pool.reserve_b, weth.decimals)

        price = eth_price
        if currency == "USD":
            usd = await self.registry.resolve(self.settings.USD_REFERENCE_ADDRESS)
            if descriptor.same_as(usd):
                price = Fraction(1)
            else:
                usd_pool = await self._pool(weth, usd)
                pools.append(usd_pool)
                price = eth_price * usd_pool.spot_price()

        rendered = format_ratio(price.numerator, price.denominator)
        logger.info(f"Price of {descriptor.symbol}: {rendered} {currency}")
        return TokenPrice(
            token=descriptor,
            quote_currency=currency,
            price=rendered,
            pool=pools[0].pool_address if pools else None,
            pools=tuple(pool.pool_address for pool in pools),
            liquidity_eth=liquidity_eth
        )
