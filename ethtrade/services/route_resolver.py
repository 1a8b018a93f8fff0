import asyncio
import logging
from typing import List, Optional

import networkx as nx

from ethtrade.errors import NoRouteFound
from ethtrade.models import PoolReserves, Route, TokenDescriptor
from ethtrade.services.reserve_oracle import PoolReserveOracle

logger = logging.getLogger(__name__)


class RouteResolver:
    def __init__(self, oracle: PoolReserveOracle, bridge: TokenDescriptor):
        """`bridge` is the wrapped native token (WETH_ADDRESS)"""
        self.oracle = oracle
        self.bridge = bridge

    async def _candidate_pools(self, token_in: TokenDescriptor, token_out: TokenDescriptor) -> List[PoolReserves]:
        lookups = [self.oracle.get_reserves(token_in, token_out)]
        if not (token_in.same_as(self.bridge) or token_out.same_as(self.bridge)):
            lookups.append(self.oracle.get_reserves(token_in, self.bridge))
            lookups.append(self.oracle.get_reserves(self.bridge, token_out))
        results = await asyncio.gather(*lookups, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        pools: List[Optional[PoolReserves]] = results
        return [pool for pool in pools if pool is not None]

    def _build_graph(self, pools: List[PoolReserves]) -> nx.Graph:
        graph = nx.Graph()
        for pool in pools:
            graph.add_node(pool.token_a.address.lower(), token=pool.token_a)
            graph.add_node(pool.token_b.address.lower(), token=pool.token_b)
            graph.add_edge(pool.token_a.address.lower(), pool.token_b.address.lower(), pool=pool)
        return graph

    async def resolve(self, token_in: TokenDescriptor, token_out: TokenDescriptor) -> Route:
        """
        Find the route for swapping token_in into token_out.

        A direct pool wins; otherwise the pair is bridged through WETH.
        Routes are never longer than two hops.

        Raises:
            NoRouteFound: identical tokens, or neither a direct nor a bridged path exists
        """
        if token_in.same_as(token_out):
            raise NoRouteFound(f"Cannot route {token_in.symbol} to itself", token=token_in.address)

        graph = self._build_graph(await self._candidate_pools(token_in, token_out))
        source, target = token_in.address.lower(), token_out.address.lower()
        try:
            path = nx.shortest_path(graph, source, target)
        except (nx.NetworkXNoPath, nx.NodeNotFound):
            raise NoRouteFound(
                f"No direct or WETH-bridged pool connects {token_in.symbol} and {token_out.symbol}",
                token_in=token_in.address,
                token_out=token_out.address
            )

        hops = []
        for a, b in zip(path, path[1:]):
            pool: PoolReserves = graph.edges[a, b]["pool"]
            hops.append(pool if pool.token_a.address.lower() == a else pool.flipped())
        tokens = tuple(graph.nodes[node]["token"] for node in path)

        logger.debug(f"Route {' -> '.join(token.symbol for token in tokens)} via {len(hops)} pool(s)")
        return Route(tokens=tokens, hops=tuple(hops))
