"""
Contract calls the engine knows how to make.

Each call is a small frozen dataclass: it encodes its own calldata and decodes
its own return shape, so callers never inspect ABIs at runtime.
"""
from dataclasses import dataclass
from typing import Any, ClassVar, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import decode_hex, function_signature_to_4byte_selector, keccak, to_checksum_address

from ethtrade.errors import GatewayError


@dataclass(frozen=True)
class ContractCall:
    signature: ClassVar[str]
    arg_types: ClassVar[Tuple[str, ...]] = ()
    return_types: ClassVar[Tuple[str, ...]] = ()

    @classmethod
    def selector(cls) -> bytes:
        return function_signature_to_4byte_selector(cls.signature)

    def args(self) -> Tuple[Any, ...]:
        return ()

    def encode(self) -> bytes:
        return self.selector() + encode(list(self.arg_types), list(self.args()))

    @classmethod
    def decode_args(cls, data: bytes) -> Tuple[Any, ...]:
        """Decode calldata produced by encode (selector included)"""
        if data[:4] != cls.selector():
            raise GatewayError(f"Calldata is not a {cls.signature} call")
        try:
            return tuple(decode(list(cls.arg_types), data[4:]))
        except DecodingError as e:
            raise GatewayError(f"Malformed {cls.signature} calldata: {str(e)}")

    def decode(self, data: bytes) -> Any:
        try:
            values = decode(list(self.return_types), data)
        except DecodingError as e:
            raise GatewayError(f"Malformed {self.signature} result: {str(e)}")
        return self._unpack(values)

    def _unpack(self, values: Tuple[Any, ...]) -> Any:
        return values[0]


@dataclass(frozen=True)
class BalanceOf(ContractCall):
    signature: ClassVar[str] = "balanceOf(address)"
    arg_types: ClassVar[Tuple[str, ...]] = ("address",)
    return_types: ClassVar[Tuple[str, ...]] = ("uint256",)
    owner: str

    def args(self):
        return (to_checksum_address(self.owner),)


@dataclass(frozen=True)
class Decimals(ContractCall):
    signature: ClassVar[str] = "decimals()"
    return_types: ClassVar[Tuple[str, ...]] = ("uint8",)

    def decode(self, data: bytes) -> int:
        # A few old tokens return a bare byte instead of a padded word
        if len(data) == 1:
            return data[0]
        if len(data) >= 32:
            value = int.from_bytes(data[:32], "big")
            if value > 255:
                raise GatewayError(f"decimals() returned {value}")
            return value
        raise GatewayError(f"Unexpected decimals() result length: {len(data)}")


@dataclass(frozen=True)
class _TextCall(ContractCall):
    return_types: ClassVar[Tuple[str, ...]] = ("string",)

    def decode(self, data: bytes) -> str:
        # Tokens such as MKR return bytes32 instead of string
        if len(data) == 32:
            return data.rstrip(b"\x00").decode("utf-8", errors="replace")
        return super().decode(data)


@dataclass(frozen=True)
class Symbol(_TextCall):
    signature: ClassVar[str] = "symbol()"


@dataclass(frozen=True)
class Name(_TextCall):
    signature: ClassVar[str] = "name()"


@dataclass(frozen=True)
class GetPair(ContractCall):
    signature: ClassVar[str] = "getPair(address,address)"
    arg_types: ClassVar[Tuple[str, ...]] = ("address", "address")
    return_types: ClassVar[Tuple[str, ...]] = ("address",)
    token_a: str
    token_b: str

    def args(self):
        return (to_checksum_address(self.token_a), to_checksum_address(self.token_b))

    def _unpack(self, values):
        return to_checksum_address(values[0])


@dataclass(frozen=True)
class GetReserves(ContractCall):
    signature: ClassVar[str] = "getReserves()"
    return_types: ClassVar[Tuple[str, ...]] = ("uint112", "uint112", "uint32")

    def _unpack(self, values) -> Tuple[int, int, int]:
        return int(values[0]), int(values[1]), int(values[2])


@dataclass(frozen=True)
class SwapExactTokensForTokens(ContractCall):
    signature: ClassVar[str] = "swapExactTokensForTokens(uint256,uint256,address[],address,uint256)"
    arg_types: ClassVar[Tuple[str, ...]] = ("uint256", "uint256", "address[]", "address", "uint256")
    return_types: ClassVar[Tuple[str, ...]] = ("uint256[]",)
    amount_in: int
    amount_out_min: int
    path: Tuple[str, ...]
    to: str
    deadline: int

    def args(self):
        return (
            self.amount_in,
            self.amount_out_min,
            [to_checksum_address(address) for address in self.path],
            to_checksum_address(self.to),
            self.deadline
        )

    def _unpack(self, values) -> Tuple[int, ...]:
        return tuple(int(amount) for amount in values[0])


UNISWAP_V2_INIT_CODE_HASH = "0x96e8ac4277198ff8b6f785478aa9a39f403cb768dd02cbee326c3e7da348845f"


def sort_tokens(token_a: str, token_b: str) -> Tuple[str, str]:
    """Pair storage order: token0 is the numerically lower address"""
    if token_a.lower() == token_b.lower():
        raise ValueError("A pair needs two distinct tokens")
    if int(token_a, 16) < int(token_b, 16):
        return token_a, token_b
    return token_b, token_a


def compute_pair_address(factory: str, token_a: str, token_b: str, init_code_hash: str) -> str:
    """CREATE2 address of the pair, as UniswapV2Library.pairFor derives it"""
    token0, token1 = sort_tokens(token_a, token_b)
    salt = keccak(decode_hex(token0) + decode_hex(token1))
    digest = keccak(b"\xff" + decode_hex(factory) + salt + decode_hex(init_code_hash))
    return to_checksum_address(digest[12:])
