import logging
from typing import List, Optional

from eth_utils import to_checksum_address

from ethtrade.config import Settings
from ethtrade.errors import InvalidAmount
from ethtrade.models import Amount, BalanceRecord, SwapResult, TokenDescriptor, TokenPrice
from ethtrade.services.balance import BalanceService
from ethtrade.services.gateway import ChainGateway, build_gateway
from ethtrade.services.numeric import decimal_places, parse_decimal
from ethtrade.services.pricing import PriceService
from ethtrade.services.reserve_oracle import PoolReserveOracle, ReserveCache, build_reserve_cache
from ethtrade.services.route_resolver import RouteResolver
from ethtrade.services.simulation import SimulationExecutor, select_sender
from ethtrade.services.swap_quoter import SwapQuoter, validate_slippage
from ethtrade.services.token_registry import TokenRegistry

logger = logging.getLogger(__name__)


class TradingService:
    """The three tools, shared by the GraphQL and MCP surfaces"""

    def __init__(self, settings: Settings, gateway: ChainGateway, cache: Optional[ReserveCache] = None):
        self.settings = settings
        self.gateway = gateway
        self.cache = cache or build_reserve_cache(settings)
        self.registry = TokenRegistry(settings, gateway)
        self.oracle = PoolReserveOracle(settings, gateway, self.cache)
        self.resolver = RouteResolver(self.oracle, self._bridge_token())
        self.quoter = SwapQuoter(settings)
        self.simulator = SimulationExecutor(settings, gateway)
        self.balances = BalanceService(gateway, self.registry)
        self.prices = PriceService(settings, self.registry, self.oracle)

    def _bridge_token(self) -> TokenDescriptor:
        weth = self.registry.lookup(self.settings.WETH_ADDRESS)
        if weth is None:
            weth = TokenDescriptor(
                address=to_checksum_address(self.settings.WETH_ADDRESS),
                symbol="WETH",
                name="Wrapped Ether",
                decimals=18
            )
            self.registry.register(weth)
        return weth

    async def get_balance(self, address: str, token: Optional[str] = None) -> BalanceRecord:
        logger.info(f"get_balance address={address} token={token}")
        return await self.balances.get_balance(address, token)

    async def get_token_price(self, token: str, quote_in: str = "USD") -> TokenPrice:
        logger.info(f"get_token_price token={token} quote_in={quote_in}")
        return await self.prices.get_token_price(token, quote_in)

    async def swap_tokens(
            self,
            from_token: str,
            to_token: str,
            amount: str,
            slippage_bps: Optional[int] = None,
            wallet_address: Optional[str] = None
    ) -> SwapResult:
        """
        Quote a swap and simulate it against the router. Nothing is broadcast.

        Args:
            from_token: Symbol or address of the token sold
            to_token: Symbol or address of the token bought
            amount: Human decimal amount of from_token
            slippage_bps: Tolerance in basis points; DEFAULT_SLIPPAGE_BPS when omitted
            wallet_address: Simulated sender; a configured or fallback address when omitted

        Returns:
            SwapResult; a reverted simulation is reported in it, not raised
        """
        logger.info(f"swap_tokens {amount} {from_token} -> {to_token} slippage={slippage_bps}")

        # Everything that can be checked without the network goes first
        if slippage_bps is None:
            slippage_bps = self.settings.DEFAULT_SLIPPAGE_BPS
        validate_slippage(slippage_bps)
        if wallet_address is not None:
            select_sender(wallet_address, self.settings)
        self.registry.check(from_token)
        self.registry.check(to_token)
        if parse_decimal(amount, decimal_places(amount)) == 0:
            raise InvalidAmount("Swap amount must be greater than zero", amount=amount)

        token_in = await self.registry.resolve(from_token)
        token_out = await self.registry.resolve(to_token)
        amount_in = Amount.parse(amount, token_in)

        route = await self.resolver.resolve(token_in, token_out)
        quote = self.quoter.quote(route, amount_in, slippage_bps)
        outcome = await self.simulator.simulate_swap(quote, wallet_address)
        return SwapResult.from_outcome(outcome)

    def available_tokens(self) -> List[TokenDescriptor]:
        return self.registry.all_tokens()

    async def close(self):
        await self.cache.close()
        await self.gateway.close()


def build_trading_service(settings: Settings) -> TradingService:
    """Wire every component from one Settings instance"""
    return TradingService(settings, build_gateway(settings), build_reserve_cache(settings))
