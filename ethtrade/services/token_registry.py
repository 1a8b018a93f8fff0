import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from eth_utils import is_address, to_checksum_address

from ethtrade.config import MAINNET_TOKENS, Settings
from ethtrade.errors import GatewayError, UnknownToken
from ethtrade.models import TokenDescriptor
from ethtrade.services.calls import Decimals, Name, Symbol
from ethtrade.services.gateway import ChainGateway

logger = logging.getLogger(__name__)


def is_well_formed_address(value: str) -> bool:
    return isinstance(value, str) and value.startswith("0x") and is_address(value)


class TokenRegistry:
    def __init__(self, settings: Settings, gateway: ChainGateway):
        """Load the static token list plus the optional registry file"""
        self.gateway = gateway
        self._by_symbol: Dict[str, TokenDescriptor] = {}
        self._by_address: Dict[str, TokenDescriptor] = {}

        for symbol, name, address, decimals in MAINNET_TOKENS:
            self.register(TokenDescriptor(address=address, symbol=symbol, name=name, decimals=decimals))

        # ETH trades through the WETH contract
        weth = self._by_address.get(settings.WETH_ADDRESS.lower())
        if weth is not None:
            self._by_symbol["ETH"] = weth

        if settings.TOKEN_REGISTRY_PATH:
            self.load_file(settings.TOKEN_REGISTRY_PATH)

    def load_file(self, path: str):
        """Register tokens from a JSON list of {symbol, name, address, decimals}"""
        entries = json.loads(Path(path).read_text(encoding="utf-8"))
        for entry in entries:
            self.register(TokenDescriptor(
                address=to_checksum_address(entry["address"]),
                symbol=entry["symbol"],
                name=entry.get("name", entry["symbol"]),
                decimals=int(entry["decimals"])
            ))
        logger.info(f"Loaded {len(entries)} tokens from {path}")

    def register(self, token: TokenDescriptor, by_symbol: bool = True):
        """Add or replace a token; later registrations win"""
        if by_symbol:
            self._by_symbol[token.symbol.upper()] = token
        self._by_address[token.address.lower()] = token

    def lookup(self, symbol_or_address: str) -> Optional[TokenDescriptor]:
        """Resolve without touching the chain"""
        if is_well_formed_address(symbol_or_address):
            return self._by_address.get(symbol_or_address.lower())
        return self._by_symbol.get(symbol_or_address.strip().upper())

    def check(self, symbol_or_address: str):
        """Fail fast on input that can never resolve"""
        if self.lookup(symbol_or_address) is None and not is_well_formed_address(symbol_or_address):
            raise UnknownToken(f"Unknown token: {symbol_or_address}", token=symbol_or_address)

    async def resolve(self, symbol_or_address: str) -> TokenDescriptor:
        """
        Resolve a symbol or contract address to a TokenDescriptor.

        Unknown but well-formed addresses are looked up on chain and cached.
        """
        token = self.lookup(symbol_or_address)
        if token is not None:
            return token
        if not is_well_formed_address(symbol_or_address):
            raise UnknownToken(f"Unknown token: {symbol_or_address}", token=symbol_or_address)

        token = await self._fetch_metadata(to_checksum_address(symbol_or_address))
        # On-chain symbols are not trusted as aliases
        self.register(token, by_symbol=False)
        return token

    async def _fetch_metadata(self, address: str) -> TokenDescriptor:
        logger.info(f"Fetching token metadata for {address}")
        decimals_call = Decimals()
        decimals_data, symbol, name = await asyncio.gather(
            self.gateway.call(address, decimals_call.encode()),
            self._read_text(address, Symbol(), "UNKNOWN"),
            self._read_text(address, Name(), "Unknown Token")
        )
        if not decimals_data:
            raise UnknownToken(f"{address} does not report decimals; not an ERC-20 token?", token=address)
        return TokenDescriptor(address=address, symbol=symbol, name=name, decimals=decimals_call.decode(decimals_data))

    async def _read_text(self, address: str, call, default: str) -> str:
        # symbol() and name() are optional in ERC-20
        try:
            data = await self.gateway.call(address, call.encode())
            return call.decode(data) if data else default
        except GatewayError as e:
            logger.warning(f"Unreadable {call.signature} for {address}: {e.message}")
            return default

    def all_tokens(self) -> List[TokenDescriptor]:
        return sorted(self._by_address.values(), key=lambda token: token.symbol)
