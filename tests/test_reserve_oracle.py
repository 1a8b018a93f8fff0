import json
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from conftest import ALPHA, BETA, GAMMA, TOKENS
from ethtrade.config import Settings
from ethtrade.services.calls import UNISWAP_V2_INIT_CODE_HASH, GetPair, GetReserves
from ethtrade.services.reserve_oracle import (
    MemoryReserveCache,
    NullReserveCache,
    PoolReserveOracle,
    RedisReserveCache,
    ReserveReading,
    build_reserve_cache,
)


async def test_reserves_follow_argument_order(settings, gateway):
    oracle = PoolReserveOracle(settings, gateway)
    weth, usdc = TOKENS["WETH"], TOKENS["USDC"]

    forward = await oracle.get_reserves(weth, usdc)
    assert (forward.reserve_a, forward.reserve_b) == (10_000 * 10 ** 18, 20_000_000 * 10 ** 6)

    backward = await oracle.get_reserves(usdc, weth)
    assert (backward.reserve_a, backward.reserve_b) == (20_000_000 * 10 ** 6, 10_000 * 10 ** 18)
    assert backward.pool_address == forward.pool_address


async def test_missing_pool_is_none(settings, gateway):
    oracle = PoolReserveOracle(settings, gateway)
    assert await oracle.get_reserves(TOKENS["UNI"], TOKENS["USDC"]) is None


async def test_empty_pool_is_none(settings, empty_gateway):
    empty_gateway.add_pool(ALPHA, BETA, 0, 0)
    oracle = PoolReserveOracle(settings, empty_gateway)
    assert await oracle.get_reserves(ALPHA, BETA) is None


async def test_create2_addressing_skips_get_pair(empty_gateway):
    settings = Settings(_env_file=None, TEST_MODE=True, PAIR_INIT_CODE_HASH=UNISWAP_V2_INIT_CODE_HASH)
    pair = empty_gateway.add_pool(ALPHA, GAMMA, 5 * 10 ** 18, 7 * 10 ** 6)
    oracle = PoolReserveOracle(settings, empty_gateway)

    reserves = await oracle.get_reserves(ALPHA, GAMMA)
    assert reserves.pool_address == pair
    assert (reserves.reserve_a, reserves.reserve_b) == (5 * 10 ** 18, 7 * 10 ** 6)
    assert all(selector != GetPair.selector() for _, selector in empty_gateway.calls)

    # Counterfactual address with no pair deployed
    assert await oracle.get_reserves(ALPHA, BETA) is None


async def test_pair_addresses_are_cached(settings, empty_gateway):
    empty_gateway.add_pool(ALPHA, BETA, 10 ** 18, 10 ** 18)
    oracle = PoolReserveOracle(settings, empty_gateway)
    await oracle.get_reserves(ALPHA, BETA)
    await oracle.get_reserves(BETA, ALPHA)
    get_pair_calls = [call for call in empty_gateway.calls if call[1] == GetPair.selector()]
    assert len(get_pair_calls) == 1


async def test_memory_cache_serves_repeated_reads(settings, empty_gateway):
    empty_gateway.add_pool(ALPHA, BETA, 10 ** 18, 2 * 10 ** 18)
    oracle = PoolReserveOracle(settings, empty_gateway, MemoryReserveCache(ttl=60))
    first = await oracle.get_reserves(ALPHA, BETA)
    second = await oracle.get_reserves(ALPHA, BETA)
    assert first == second
    reads = [call for call in empty_gateway.calls if call[1] == GetReserves.selector()]
    assert len(reads) == 1


async def test_memory_cache_expires():
    cache = MemoryReserveCache(ttl=0.0)
    await cache.put("0xPair", ReserveReading(1, 2, 3))
    assert await cache.get("0xpair") is None


async def test_memory_cache_last_writer_wins():
    cache = MemoryReserveCache(ttl=60)
    await cache.put("0xPair", ReserveReading(1, 2, 3))
    await cache.put("0xPAIR", ReserveReading(4, 5, 6))
    assert await cache.get("0xpair") == ReserveReading(4, 5, 6)


async def test_redis_cache_round_trip():
    client = AsyncMock()
    cache = RedisReserveCache(client, ttl=3)
    await cache.put("0xPair", ReserveReading(10 ** 30, 2, 1700000000))

    key, value = client.set.call_args.args
    assert key == "ethtrade:reserves:0xpair"
    assert client.set.call_args.kwargs == {"px": 3000}

    client.get.return_value = value
    assert await cache.get("0xPair") == ReserveReading(10 ** 30, 2, 1700000000)


async def test_redis_cache_miss_and_outage():
    client = AsyncMock()
    client.get.return_value = None
    cache = RedisReserveCache(client, ttl=3)
    assert await cache.get("0xpair") is None

    client.get.side_effect = redis.ConnectionError("down")
    assert await cache.get("0xpair") is None


async def test_redis_cache_discards_malformed_entries():
    client = AsyncMock()
    client.get.return_value = json.dumps({"reserve0": "x"})
    assert await RedisReserveCache(client, ttl=3).get("0xpair") is None


def test_build_reserve_cache():
    assert isinstance(build_reserve_cache(Settings(_env_file=None, RESERVE_CACHE_TTL=0)), NullReserveCache)
    assert isinstance(build_reserve_cache(Settings(_env_file=None, REDIS_URL="")), MemoryReserveCache)
    cache = build_reserve_cache(Settings(_env_file=None, REDIS_URL="redis://localhost:6379/0"))
    assert isinstance(cache, RedisReserveCache)
    assert cache.ttl_ms == 3000
