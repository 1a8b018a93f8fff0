import logging
from typing import Optional

from eth_utils import is_address, to_checksum_address

from ethtrade.config import NATIVE_ADDRESS
from ethtrade.errors import InvalidAddress
from ethtrade.models import NATIVE_ETH, BalanceRecord
from ethtrade.services.gateway import ChainGateway
from ethtrade.services.numeric import format_decimal
from ethtrade.services.token_registry import TokenRegistry

logger = logging.getLogger(__name__)


def _is_native(token: Optional[str]) -> bool:
    if token is None:
        return True
    token = token.strip()
    return token.upper() == "ETH" or token.lower() == NATIVE_ADDRESS.lower()


class BalanceService:
    def __init__(self, gateway: ChainGateway, registry: TokenRegistry):
        self.gateway = gateway
        self.registry = registry

    async def get_balance(self, address: str, token: Optional[str] = None) -> BalanceRecord:
        """
        Balance of `address` in ETH (no token, or "ETH") or in an ERC-20 token.

        Args:
            address: Holder address
            token: Token symbol or contract address

        Returns:
            BalanceRecord with the raw and the formatted amount
        """
        if not isinstance(address, str) or not is_address(address):
            raise InvalidAddress(f"Not an Ethereum address: {address}", address=address)
        holder = to_checksum_address(address)

        if _is_native(token):
            descriptor = NATIVE_ETH
            raw = await self.gateway.get_native_balance(holder)
        else:
            self.registry.check(token)
            descriptor = await self.registry.resolve(token)
            raw = await self.gateway.get_token_balance(descriptor.address, holder)

        logger.info(f"Balance of {holder}: {raw} {descriptor.symbol} (raw)")
        return BalanceRecord(
            address=holder,
            token=descriptor,
            balance=raw,
            decimals=descriptor.decimals,
            formatted_balance=format_decimal(raw, descriptor.decimals)
        )
