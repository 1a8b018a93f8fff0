import asyncio

import pytest

from conftest import ALPHA, BETA, GAMMA, TOKENS
from ethtrade.errors import GatewayTimeout, NoRouteFound
from ethtrade.services.reserve_oracle import PoolReserveOracle
from ethtrade.services.route_resolver import RouteResolver

WETH = TOKENS["WETH"]


@pytest.fixture
def resolver(settings, empty_gateway):
    return RouteResolver(PoolReserveOracle(settings, empty_gateway), WETH)


async def test_two_hop_route_through_bridge(resolver, empty_gateway):
    empty_gateway.add_pool(ALPHA, WETH, 10 ** 21, 10 ** 20)
    empty_gateway.add_pool(WETH, GAMMA, 10 ** 20, 10 ** 12)

    route = await resolver.resolve(ALPHA, GAMMA)
    assert [token.symbol for token in route.tokens] == ["ALPHA", "WETH", "GAMMA"]
    assert route.hops[0].token_a == ALPHA and route.hops[0].reserve_a == 10 ** 21
    assert route.hops[1].token_a == WETH and route.hops[1].reserve_b == 10 ** 12


async def test_direct_pool_wins(resolver, empty_gateway):
    empty_gateway.add_pool(ALPHA, WETH, 10 ** 21, 10 ** 20)
    empty_gateway.add_pool(WETH, GAMMA, 10 ** 20, 10 ** 12)
    direct = empty_gateway.add_pool(ALPHA, GAMMA, 10 ** 21, 10 ** 12)

    route = await resolver.resolve(ALPHA, GAMMA)
    assert route.pools == (direct,)
    assert route.path == (ALPHA.address, GAMMA.address)


async def test_bridge_side_only_searches_directly(resolver, empty_gateway):
    pool = empty_gateway.add_pool(WETH, GAMMA, 10 ** 20, 10 ** 12)
    route = await resolver.resolve(GAMMA, WETH)
    assert route.pools == (pool,)
    assert route.hops[0].token_a == GAMMA
    # One getPair lookup, no bridge legs
    assert len(empty_gateway.calls) == 2


async def test_missing_bridge_leg_is_no_route(resolver, empty_gateway):
    empty_gateway.add_pool(ALPHA, WETH, 10 ** 21, 10 ** 20)
    with pytest.raises(NoRouteFound):
        await resolver.resolve(ALPHA, BETA)


async def test_no_pools_at_all(resolver):
    with pytest.raises(NoRouteFound) as exc:
        await resolver.resolve(ALPHA, BETA)
    assert exc.value.kind == "NoRouteFound"


async def test_same_token_is_no_route(resolver):
    with pytest.raises(NoRouteFound):
        await resolver.resolve(ALPHA, ALPHA)


async def test_lookup_failure_waits_for_other_lookups(resolver, monkeypatch):
    finished = []

    async def get_reserves(token_a, token_b):
        if token_a == ALPHA and token_b == BETA:
            raise GatewayTimeout("RPC eth_call timed out", method="eth_call")
        await asyncio.sleep(0)
        finished.append((token_a.symbol, token_b.symbol))
        return None

    monkeypatch.setattr(resolver.oracle, "get_reserves", get_reserves)
    with pytest.raises(GatewayTimeout):
        await resolver.resolve(ALPHA, BETA)
    assert sorted(finished) == [("ALPHA", "WETH"), ("WETH", "BETA")]
