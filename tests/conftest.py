import pytest

from ethtrade.config import MAINNET_TOKENS, Settings
from ethtrade.models import TokenDescriptor
from ethtrade.services.gateway import TestChainGateway
from ethtrade.services.reserve_oracle import NullReserveCache
from ethtrade.services.trading import TradingService

TOKENS = {
    symbol: TokenDescriptor(address=address, symbol=symbol, name=name, decimals=decimals)
    for symbol, name, address, decimals in MAINNET_TOKENS
}

# Tokens that exist only in tests
ALPHA = TokenDescriptor(address="0x" + "a1" * 20, symbol="ALPHA", name="Alpha", decimals=18)
BETA = TokenDescriptor(address="0x" + "b2" * 20, symbol="BETA", name="Beta", decimals=18)
GAMMA = TokenDescriptor(address="0x" + "c3" * 20, symbol="GAMMA", name="Gamma", decimals=6)

UNAPPROVED_WALLET = "0x1111111111111111111111111111111111111111"


class CountingGateway(TestChainGateway):
    """TestChainGateway that records every eth_call it answers"""
    __test__ = False

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls = []

    async def call(self, to, data):
        self.calls.append((to.lower(), data[:4]))
        return await super().call(to, data)


@pytest.fixture
def settings():
    return Settings(_env_file=None, TEST_MODE=True, RESERVE_CACHE_TTL=0, PRIVATE_KEY="", REDIS_URL="")


@pytest.fixture
def gateway(settings):
    return TestChainGateway.seeded(settings)


@pytest.fixture
def empty_gateway(settings):
    return CountingGateway(
        factory_address=settings.FACTORY_ADDRESS,
        router_address=settings.ROUTER_ADDRESS
    )


@pytest.fixture
def trading(settings, gateway):
    return TradingService(settings, gateway, NullReserveCache())
