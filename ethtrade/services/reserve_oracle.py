import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, NamedTuple, Optional, Tuple

import redis.asyncio as redis

from ethtrade.config import ZERO_ADDRESS, Settings
from ethtrade.models import PoolReserves, TokenDescriptor
from ethtrade.services.calls import GetPair, GetReserves, compute_pair_address, sort_tokens
from ethtrade.services.gateway import ChainGateway

logger = logging.getLogger(__name__)


class ReserveReading(NamedTuple):
    """Raw getReserves() answer, in pair storage order"""
    reserve0: int
    reserve1: int
    block_timestamp_last: int


class ReserveCache(ABC):
    @abstractmethod
    async def get(self, pair_address: str) -> Optional[ReserveReading]:
        ...

    @abstractmethod
    async def put(self, pair_address: str, reading: ReserveReading):
        ...

    async def close(self):
        pass


class NullReserveCache(ReserveCache):
    """Every read goes to the chain"""

    async def get(self, pair_address: str) -> Optional[ReserveReading]:
        return None

    async def put(self, pair_address: str, reading: ReserveReading):
        pass


class MemoryReserveCache(ReserveCache):
    def __init__(self, ttl: float):
        self.ttl = ttl
        self._entries: Dict[str, Tuple[float, ReserveReading]] = {}
        self._lock = asyncio.Lock()

    async def get(self, pair_address: str) -> Optional[ReserveReading]:
        entry = self._entries.get(pair_address.lower())
        if entry is None:
            return None
        expires_at, reading = entry
        if time.monotonic() >= expires_at:
            return None
        return reading

    async def put(self, pair_address: str, reading: ReserveReading):
        async with self._lock:
            # Whole-entry replacement, last writer wins
            self._entries[pair_address.lower()] = (time.monotonic() + self.ttl, reading)


class RedisReserveCache(ReserveCache):
    """Reserve readings shared between processes through Redis"""

    def __init__(self, client: redis.Redis, ttl: float, prefix: str = "ethtrade:reserves:"):
        self.redis = client
        self.ttl_ms = max(1, int(ttl * 1000))
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, ttl: float) -> "RedisReserveCache":
        client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, ttl)

    def _key(self, pair_address: str) -> str:
        return self.prefix + pair_address.lower()

    async def get(self, pair_address: str) -> Optional[ReserveReading]:
        try:
            data = await self.redis.get(self._key(pair_address))
        except redis.RedisError as e:
            logger.warning(f"Reserve cache read failed for {pair_address}: {str(e)}")
            return None
        if not data:
            return None
        try:
            entry = json.loads(data)
            return ReserveReading(int(entry["reserve0"]), int(entry["reserve1"]), int(entry["timestamp"]))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding malformed reserve cache entry for {pair_address}: {str(e)}")
            return None

    async def put(self, pair_address: str, reading: ReserveReading):
        entry = json.dumps({
            "reserve0": str(reading.reserve0),
            "reserve1": str(reading.reserve1),
            "timestamp": reading.block_timestamp_last
        })
        try:
            await self.redis.set(self._key(pair_address), entry, px=self.ttl_ms)
        except redis.RedisError as e:
            logger.warning(f"Reserve cache write failed for {pair_address}: {str(e)}")

    async def close(self):
        await self.redis.aclose()


def build_reserve_cache(settings: Settings) -> ReserveCache:
    if settings.RESERVE_CACHE_TTL <= 0:
        logger.info("Reserve caching disabled")
        return NullReserveCache()
    if settings.REDIS_URL:
        logger.info(f"Caching reserves in Redis for {settings.RESERVE_CACHE_TTL}s")
        return RedisReserveCache.from_url(settings.REDIS_URL, settings.RESERVE_CACHE_TTL)
    return MemoryReserveCache(settings.RESERVE_CACHE_TTL)


class PoolReserveOracle:
    def __init__(self, settings: Settings, gateway: ChainGateway, cache: Optional[ReserveCache] = None):
        self.gateway = gateway
        self.factory_address = settings.FACTORY_ADDRESS
        self.init_code_hash = settings.PAIR_INIT_CODE_HASH
        self.cache = cache or NullReserveCache()
        # (token0, token1) -> pair address, or None when the factory has no pair
        self._pairs: Dict[Tuple[str, str], Optional[str]] = {}

    async def pair_address(self, token_a: str, token_b: str) -> Optional[str]:
        key = sort_tokens(token_a.lower(), token_b.lower())
        if key in self._pairs:
            return self._pairs[key]

        if self.init_code_hash:
            pair = compute_pair_address(self.factory_address, token_a, token_b, self.init_code_hash)
        else:
            call = GetPair(token_a=token_a, token_b=token_b)
            pair = call.decode(await self.gateway.call(self.factory_address, call.encode()))
            if pair.lower() == ZERO_ADDRESS:
                pair = None
        self._pairs[key] = pair
        return pair

    async def _read(self, pair: str) -> Optional[ReserveReading]:
        reading = await self.cache.get(pair)
        if reading is not None:
            return reading

        call = GetReserves()
        data = await self.gateway.call(pair, call.encode())
        if not data:
            # CREATE2 address without a deployed pair
            return None
        reading = ReserveReading(*call.decode(data))
        await self.cache.put(pair, reading)
        return reading

    async def get_reserves(self, token_a: TokenDescriptor, token_b: TokenDescriptor) -> Optional[PoolReserves]:
        """
        Current reserves of the token_a/token_b pool, ordered as (token_a, token_b).

        Returns None when there is no pool or the pool is empty.
        """
        if token_a.same_as(token_b):
            return None
        pair = await self.pair_address(token_a.address, token_b.address)
        if pair is None:
            logger.debug(f"No pool for {token_a.symbol}/{token_b.symbol}")
            return None

        reading = await self._read(pair)
        if reading is None or reading.reserve0 == 0 or reading.reserve1 == 0:
            logger.debug(f"Pool {pair} for {token_a.symbol}/{token_b.symbol} has no liquidity")
            return None

        token0, _ = sort_tokens(token_a.address, token_b.address)
        if token0 == token_a.address:
            reserve_a, reserve_b = reading.reserve0, reading.reserve1
        else:
            reserve_a, reserve_b = reading.reserve1, reading.reserve0
        return PoolReserves(
            pool_address=pair,
            token_a=token_a,
            token_b=token_b,
            reserve_a=reserve_a,
            reserve_b=reserve_b,
            block_timestamp_last=reading.block_timestamp_last
        )
