import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx
from eth_abi import encode
from eth_utils import decode_hex, encode_hex, function_signature_to_4byte_selector, to_checksum_address

from ethtrade.config import MAINNET_TOKENS, ZERO_ADDRESS, Settings
from ethtrade.errors import EstimationFailed, GatewayError, GatewayTimeout
from ethtrade.models import TokenDescriptor
from ethtrade.services.calls import (
    UNISWAP_V2_INIT_CODE_HASH,
    BalanceOf,
    Decimals,
    GetPair,
    GetReserves,
    Name,
    SwapExactTokensForTokens,
    Symbol,
    compute_pair_address,
    sort_tokens,
)
from ethtrade.services.numeric import parse_decimal
from ethtrade.services.swap_quoter import get_amount_out

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallResult:
    success: bool
    return_data: bytes = b""
    revert_data: bytes = b""
    message: str = ""  # Node's error text when the call reverted


class ChainGateway(ABC):
    """Read-only view of one chain. Nothing here ever changes chain state."""

    @abstractmethod
    async def get_chain_id(self) -> int:
        ...

    @abstractmethod
    async def get_native_balance(self, address: str) -> int:
        ...

    @abstractmethod
    async def call(self, to: str, data: bytes) -> bytes:
        """eth_call for reading contract state; a revert is a GatewayError here"""
        ...

    @abstractmethod
    async def simulate_call(self, to: str, data: bytes, from_address: str) -> CallResult:
        ...

    @abstractmethod
    async def estimate_gas(self, to: str, data: bytes, from_address: str) -> int:
        ...

    async def get_token_balance(self, token_address: str, address: str) -> int:
        call = BalanceOf(owner=address)
        return call.decode(await self.call(token_address, call.encode()))

    async def close(self):
        pass


class RpcChainGateway(ChainGateway):
    """JSON-RPC gateway talking to a remote node"""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.rpc_url = settings.RPC_URL
        self.masked_url = settings.masked_rpc_url()
        self.client = client or httpx.AsyncClient(
            timeout=settings.RPC_TIMEOUT,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": "ethtrade/0.1"
            }
        )
        self._ids = itertools.count(1)

    async def _post(self, method: str, params: list) -> Dict[str, Any]:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        logger.debug(f"RPC {method} -> {self.masked_url}")
        try:
            response = await self.client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            raise GatewayTimeout(f"RPC {method} timed out", method=method) from e
        except httpx.HTTPError as e:
            raise GatewayError(f"RPC {method} failed: {str(e)}", method=method) from e
        except ValueError as e:
            raise GatewayError(f"RPC {method} returned a non-JSON response", method=method) from e

        if not isinstance(body, dict) or ("result" not in body and "error" not in body):
            raise GatewayError(f"RPC {method} returned a malformed response", method=method)
        error = body.get("error")
        if error is not None and not isinstance(error, dict):
            raise GatewayError(f"RPC {method} returned a malformed error: {error!r}", method=method)
        return body

    async def _request(self, method: str, params: list) -> Any:
        body = await self._post(method, params)
        if "error" in body:
            error = body["error"] or {}
            raise GatewayError(
                f"RPC {method} error: {error.get('message', 'unknown error')}",
                method=method,
                code=error.get("code")
            )
        return body["result"]

    @staticmethod
    def _tx(to: str, data: bytes, from_address: Optional[str] = None) -> Dict[str, str]:
        tx = {"to": to_checksum_address(to), "data": encode_hex(data)}
        if from_address:
            tx["from"] = to_checksum_address(from_address)
        return tx

    @staticmethod
    def _quantity(value: Any, method: str) -> int:
        try:
            return int(value, 16)
        except (TypeError, ValueError) as e:
            raise GatewayError(f"RPC {method} returned a non-hex quantity: {value!r}") from e

    @staticmethod
    def _bytes(value: Any, method: str) -> bytes:
        try:
            return decode_hex(value)
        except (TypeError, ValueError) as e:
            raise GatewayError(f"RPC {method} returned malformed hex data: {value!r}") from e

    @staticmethod
    def _revert_data(error: Dict[str, Any]) -> Optional[str]:
        """Revert payload hex; nodes nest it differently"""
        data = error.get("data")
        if isinstance(data, str):
            # Some nodes prefix the payload with "Reverted "
            candidate = data.split()[-1] if data else ""
            return candidate if candidate.startswith("0x") else None
        if isinstance(data, dict):
            for key in ("data", "return", "result", "output"):
                candidate = data.get(key)
                if isinstance(candidate, str) and candidate.startswith("0x"):
                    return candidate
        return None

    async def get_chain_id(self) -> int:
        return self._quantity(await self._request("eth_chainId", []), "eth_chainId")

    async def get_native_balance(self, address: str) -> int:
        result = await self._request("eth_getBalance", [to_checksum_address(address), "latest"])
        return self._quantity(result, "eth_getBalance")

    async def call(self, to: str, data: bytes) -> bytes:
        result = await self._request("eth_call", [self._tx(to, data), "latest"])
        return self._bytes(result, "eth_call")

    async def simulate_call(self, to: str, data: bytes, from_address: str) -> CallResult:
        body = await self._post("eth_call", [self._tx(to, data, from_address), "latest"])
        if "error" not in body:
            return CallResult(success=True, return_data=self._bytes(body["result"], "eth_call"))

        error = body["error"] or {}
        message = str(error.get("message", ""))
        revert_hex = self._revert_data(error)
        if error.get("code") == 3 or "revert" in message.lower() or revert_hex:
            logger.debug(f"eth_call reverted: {message}")
            return CallResult(
                success=False,
                revert_data=self._bytes(revert_hex, "eth_call") if revert_hex else b"",
                message=message
            )
        raise GatewayError(f"RPC eth_call error: {message or 'unknown error'}", code=error.get("code"))

    async def estimate_gas(self, to: str, data: bytes, from_address: str) -> int:
        body = await self._post("eth_estimateGas", [self._tx(to, data, from_address)])
        if "error" in body:
            error = body["error"] or {}
            raise EstimationFailed(
                f"Gas estimation failed: {error.get('message', 'unknown error')}",
                code=error.get("code")
            )
        return self._quantity(body["result"], "eth_estimateGas")

    async def close(self):
        await self.client.aclose()


ERROR_STRING_SELECTOR = function_signature_to_4byte_selector("Error(string)")


def encode_revert_string(message: str) -> bytes:
    return ERROR_STRING_SELECTOR + encode(["string"], [message])


class TestChainGateway(ChainGateway):
    """
    Deterministic in-memory chain used in test mode.

    Holds tokens, Uniswap V2 style pairs, balances and router allowances,
    and answers the same calls the RPC gateway would, including router
    swap simulation with the router's revert strings.
    """
    __test__ = False

    def __init__(
            self,
            *,
            factory_address: str,
            router_address: str,
            chain_id: int = 1,
            fee_bps: int = 30,
            default_native_balance: int = 0,
            gas_estimate: int = 150000,
            fail_gas_estimation: bool = False
    ):
        self.factory_address = factory_address
        self.router_address = router_address
        self.chain_id = chain_id
        self.fee_bps = fee_bps
        self.default_native_balance = default_native_balance
        self.gas_estimate = gas_estimate
        self.fail_gas_estimation = fail_gas_estimation
        self.tokens: Dict[str, TokenDescriptor] = {}
        self.pairs: Dict[Tuple[str, str], str] = {}
        self.reserves: Dict[str, Tuple[str, int, int]] = {}  # pair -> (token0, reserve0, reserve1)
        self.native_balances: Dict[str, int] = {}
        self.token_balances: Dict[Tuple[str, str], int] = {}
        self.default_token_balances: Dict[str, int] = {}
        self.approved_senders: set = set()
        self.block_timestamp = 1700000000

    @classmethod
    def seeded(cls, settings: Settings) -> "TestChainGateway":
        """Mainnet-like fixture: major tokens paired with WETH at round prices"""
        gateway = cls(
            factory_address=settings.FACTORY_ADDRESS,
            router_address=settings.ROUTER_ADDRESS,
            chain_id=settings.CHAIN_ID,
            fee_bps=settings.FEE_BPS,
            default_native_balance=parse_decimal(settings.TEST_BALANCE, 18),
            gas_estimate=settings.TEST_GAS_ESTIMATE
        )
        tokens = {}
        for symbol, name, address, decimals in MAINNET_TOKENS:
            tokens[symbol] = TokenDescriptor(address=address, symbol=symbol, name=name, decimals=decimals)
            gateway.add_token(tokens[symbol], default_balance=parse_decimal(settings.TEST_BALANCE, decimals))

        weth = tokens["WETH"]
        for symbol, weth_reserve, token_reserve in [
            ("USDC", "10000", "20000000"),
            ("USDT", "8000", "16000000"),
            ("DAI", "5000", "10000000"),
            ("WBTC", "2000", "100"),
            ("UNI", "1000", "250000"),
        ]:
            token = tokens[symbol]
            gateway.add_pool(
                weth,
                token,
                parse_decimal(weth_reserve, weth.decimals),
                parse_decimal(token_reserve, token.decimals)
            )
        gateway.add_pool(
            tokens["USDC"],
            tokens["USDT"],
            parse_decimal("5000000", 6),
            parse_decimal("5000000", 6)
        )
        gateway.approve(settings.SIMULATION_FALLBACK_ADDRESS)
        return gateway

    def add_token(self, token: TokenDescriptor, default_balance: int = 0):
        self.tokens[token.address.lower()] = token
        self.default_token_balances[token.address.lower()] = default_balance

    def add_pool(self, token_a: TokenDescriptor, token_b: TokenDescriptor, reserve_a: int, reserve_b: int) -> str:
        for token in (token_a, token_b):
            if token.address.lower() not in self.tokens:
                self.add_token(token)
        pair = compute_pair_address(
            self.factory_address, token_a.address, token_b.address, UNISWAP_V2_INIT_CODE_HASH
        )
        token0, token1 = sort_tokens(token_a.address.lower(), token_b.address.lower())
        self.pairs[(token0, token1)] = pair
        if token0 == token_a.address.lower():
            self.reserves[pair.lower()] = (token0, reserve_a, reserve_b)
        else:
            self.reserves[pair.lower()] = (token0, reserve_b, reserve_a)
        return pair

    def set_native_balance(self, address: str, value: int):
        self.native_balances[address.lower()] = value

    def set_token_balance(self, token_address: str, address: str, value: int):
        self.token_balances[(token_address.lower(), address.lower())] = value

    def approve(self, sender: str):
        """Give `sender` unlimited router allowance on every token"""
        self.approved_senders.add(sender.lower())

    def _pair_for(self, token_a: str, token_b: str) -> Optional[str]:
        if token_a.lower() == token_b.lower():
            return None
        return self.pairs.get(sort_tokens(token_a.lower(), token_b.lower()))

    def _token_balance(self, token_address: str, holder: str) -> int:
        key = (token_address.lower(), holder.lower())
        if key in self.token_balances:
            return self.token_balances[key]
        return self.default_token_balances.get(token_address.lower(), 0)

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def get_native_balance(self, address: str) -> int:
        return self.native_balances.get(address.lower(), self.default_native_balance)

    async def call(self, to: str, data: bytes) -> bytes:
        selector = data[:4]
        target = to.lower()

        if selector == GetPair.selector() and target == self.factory_address.lower():
            token_a, token_b = GetPair.decode_args(data)
            return encode(["address"], [self._pair_for(token_a, token_b) or ZERO_ADDRESS])

        if selector == GetReserves.selector():
            if target not in self.reserves:
                return b""  # No contract deployed there
            _, reserve0, reserve1 = self.reserves[target]
            return encode(["uint112", "uint112", "uint32"], [reserve0, reserve1, self.block_timestamp])

        token = self.tokens.get(target)
        if token is None:
            return b""
        if selector == BalanceOf.selector():
            (owner,) = BalanceOf.decode_args(data)
            return encode(["uint256"], [self._token_balance(target, owner)])
        if selector == Decimals.selector():
            return encode(["uint8"], [token.decimals])
        if selector == Symbol.selector():
            return encode(["string"], [token.symbol])
        if selector == Name.selector():
            return encode(["string"], [token.name])
        return b""

    def _swap(self, data: bytes, sender: str) -> CallResult:
        amount_in, amount_out_min, path, _to, deadline = SwapExactTokensForTokens.decode_args(data)
        if deadline < self.block_timestamp:
            return self._revert("UniswapV2Router: EXPIRED")
        if len(path) < 2:
            return self._revert("UniswapV2Library: INVALID_PATH")

        amounts = [amount_in]
        for token_in, token_out in zip(path, path[1:]):
            pair = self._pair_for(token_in, token_out)
            if pair is None:
                # pairFor points at an address without code
                return CallResult(success=False, message="execution reverted")
            token0, reserve0, reserve1 = self.reserves[pair.lower()]
            reserve_in, reserve_out = (reserve0, reserve1) if token_in.lower() == token0 else (reserve1, reserve0)
            if amounts[-1] == 0:
                return self._revert("UniswapV2Library: INSUFFICIENT_INPUT_AMOUNT")
            if reserve_in == 0 or reserve_out == 0:
                return self._revert("UniswapV2Library: INSUFFICIENT_LIQUIDITY")
            amounts.append(get_amount_out(amounts[-1], reserve_in, reserve_out, self.fee_bps))

        if amounts[-1] < amount_out_min:
            return self._revert("UniswapV2Router: INSUFFICIENT_OUTPUT_AMOUNT")
        if sender.lower() not in self.approved_senders or self._token_balance(path[0], sender) < amount_in:
            return self._revert("TransferHelper: TRANSFER_FROM_FAILED")
        return CallResult(success=True, return_data=encode(["uint256[]"], [amounts]))

    @staticmethod
    def _revert(reason: str) -> CallResult:
        return CallResult(
            success=False,
            revert_data=encode_revert_string(reason),
            message=f"execution reverted: {reason}"
        )

    async def simulate_call(self, to: str, data: bytes, from_address: str) -> CallResult:
        if to.lower() == self.router_address.lower():
            if data[:4] == SwapExactTokensForTokens.selector():
                return self._swap(data, from_address)
            return CallResult(success=False, message="execution reverted")
        return CallResult(success=True, return_data=await self.call(to, data))

    async def estimate_gas(self, to: str, data: bytes, from_address: str) -> int:
        result = await self.simulate_call(to, data, from_address)
        if not result.success:
            raise EstimationFailed(f"Gas estimation failed: {result.message}")
        if self.fail_gas_estimation:
            raise EstimationFailed("Gas estimation failed: gas required exceeds allowance")
        return self.gas_estimate


def build_gateway(settings: Settings, client: Optional[httpx.AsyncClient] = None) -> ChainGateway:
    """Pick the gateway variant once, at startup"""
    if settings.TEST_MODE:
        logger.info("Test mode: using the in-memory chain")
        return TestChainGateway.seeded(settings)
    logger.info(f"Using RPC node {settings.masked_rpc_url()}")
    return RpcChainGateway(settings, client=client)
