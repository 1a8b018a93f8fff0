import logging

import pytest

from conftest import ALPHA, TOKENS
from ethtrade.errors import InvalidQuoteCurrency, PoolNotFound, UnknownToken
from ethtrade.services.pricing import PriceService
from ethtrade.services.reserve_oracle import PoolReserveOracle
from ethtrade.services.token_registry import TokenRegistry


@pytest.fixture
def prices(settings, gateway):
    return PriceService(settings, TokenRegistry(settings, gateway), PoolReserveOracle(settings, gateway))


async def test_price_in_eth(prices):
    price = await prices.get_token_price("UNI", "ETH")
    assert price.price == "0.004"
    assert price.quote_currency == "ETH"
    assert price.liquidity_eth == "2000"
    assert len(price.pools) == 1
    assert price.pool == price.pools[0]


async def test_price_is_logged_exactly(prices, caplog):
    caplog.set_level(logging.INFO, logger="ethtrade.services.pricing")
    await prices.get_token_price("UNI", "ETH")
    assert "Price of UNI: 0.004 ETH" in caplog.text


async def test_price_in_usd_crosses_weth_usdc(prices):
    price = await prices.get_token_price("UNI", "usd")
    assert price.price == "8"
    assert price.quote_currency == "USD"
    assert len(price.pools) == 2


async def test_price_respects_token_decimals(prices):
    assert (await prices.get_token_price("WBTC", "USD")).price == "40000"
    assert (await prices.get_token_price("WBTC", "ETH")).price == "20"


async def test_weth_prices(prices):
    assert (await prices.get_token_price("WETH", "ETH")).price == "1"
    eth_usd = await prices.get_token_price("ETH", "USD")
    assert eth_usd.price == "2000"
    assert eth_usd.liquidity_eth is None


async def test_usd_reference_short_circuits(prices):
    price = await prices.get_token_price("USDC", "USD")
    assert price.price == "1"
    assert len(price.pools) == 1


async def test_unsupported_quote_currency(prices):
    with pytest.raises(InvalidQuoteCurrency):
        await prices.get_token_price("UNI", "EUR")


async def test_token_without_weth_pool(prices, gateway):
    gateway.add_token(ALPHA)
    with pytest.raises(PoolNotFound) as exc:
        await prices.get_token_price(ALPHA.address, "ETH")
    assert exc.value.kind == "NotFound"


async def test_unknown_token(prices):
    with pytest.raises(UnknownToken):
        await prices.get_token_price("NOPE")
