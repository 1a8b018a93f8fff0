"""
Dry-run of the router swap a quote describes.

Reverts are decoded by an ordered chain: Error(string), Panic(uint256),
known custom errors, and finally a raw decoder that always answers.
"""
import logging
from typing import Dict, List, Optional, Tuple

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_utils import encode_hex, function_signature_to_4byte_selector, is_address, to_checksum_address

from ethtrade.config import ZERO_ADDRESS, Settings
from ethtrade.errors import EstimationFailed, GatewayError, InvalidAddress
from ethtrade.models import Quote, RevertCode, RevertReason, SimulationOutcome
from ethtrade.services.calls import SwapExactTokensForTokens
from ethtrade.services.gateway import ChainGateway
from ethtrade.services.numeric import UINT256_MAX

logger = logging.getLogger(__name__)

# Router reason strings, matched as substrings of the revert message
REASON_CODES: List[Tuple[str, RevertCode]] = [
    ("TRANSFER_FROM_FAILED", RevertCode.TRANSFER_FROM_FAILED),
    ("EXPIRED", RevertCode.EXPIRED_DEADLINE),
    ("INSUFFICIENT_OUTPUT_AMOUNT", RevertCode.INSUFFICIENT_OUTPUT_AMOUNT),
    ("INSUFFICIENT_LIQUIDITY", RevertCode.INSUFFICIENT_LIQUIDITY),
    ("insufficient allowance", RevertCode.INSUFFICIENT_ALLOWANCE),
    ("transfer amount exceeds balance", RevertCode.INSUFFICIENT_BALANCE),
]

PANIC_CODES: Dict[int, str] = {
    0x01: "assertion failed",
    0x11: "arithmetic overflow or underflow",
    0x12: "division by zero",
    0x21: "invalid enum value",
    0x22: "corrupted storage byte array",
    0x31: "pop on empty array",
    0x32: "array index out of bounds",
    0x41: "out of memory",
    0x51: "call to uninitialized function",
}


def _selector(signature: str) -> bytes:
    return function_signature_to_4byte_selector(signature)


class RevertDecoder:
    def decode(self, data: bytes, message: str) -> Optional[RevertReason]:
        raise NotImplementedError


class ErrorStringDecoder(RevertDecoder):
    selector = _selector("Error(string)")

    def decode(self, data, message):
        if data[:4] != self.selector:
            return None
        try:
            (reason,) = decode(["string"], data[4:])
        except DecodingError:
            return None
        code = RevertCode.UNKNOWN
        for needle, candidate in REASON_CODES:
            if needle in reason:
                code = candidate
                break
        return RevertReason(code=code, message=reason, selector=encode_hex(self.selector), data=encode_hex(data))


class PanicDecoder(RevertDecoder):
    selector = _selector("Panic(uint256)")

    def decode(self, data, message):
        if data[:4] != self.selector:
            return None
        try:
            (panic_code,) = decode(["uint256"], data[4:])
        except DecodingError:
            return None
        description = PANIC_CODES.get(panic_code, "unknown panic")
        return RevertReason(
            code=RevertCode.PANIC,
            message=f"Panic(0x{panic_code:02x}): {description}",
            selector=encode_hex(self.selector),
            data=encode_hex(data)
        )


class CustomErrorDecoder(RevertDecoder):
    # signature -> (code, argument types)
    KNOWN_ERRORS = {
        "ERC20InsufficientAllowance(address,uint256,uint256)": (
            RevertCode.INSUFFICIENT_ALLOWANCE, ["address", "uint256", "uint256"]
        ),
        "ERC20InsufficientBalance(address,uint256,uint256)": (
            RevertCode.INSUFFICIENT_BALANCE, ["address", "uint256", "uint256"]
        ),
        "TransactionDeadlinePassed()": (RevertCode.EXPIRED_DEADLINE, []),
        "V2TooLittleReceived()": (RevertCode.INSUFFICIENT_OUTPUT_AMOUNT, []),
        "InsufficientOutputAmount()": (RevertCode.INSUFFICIENT_OUTPUT_AMOUNT, []),
    }

    def __init__(self):
        self._by_selector = {
            _selector(signature): (signature, code, types)
            for signature, (code, types) in self.KNOWN_ERRORS.items()
        }

    def decode(self, data, message):
        known = self._by_selector.get(data[:4])
        if known is None:
            return None
        signature, code, types = known
        name = signature.split("(")[0]
        text = name
        if types:
            try:
                args = decode(types, data[4:])
                text = f"{name}({', '.join(str(arg) for arg in args)})"
            except DecodingError:
                pass
        return RevertReason(code=code, message=text, selector=encode_hex(data[:4]), data=encode_hex(data))


class RawDecoder(RevertDecoder):
    """Terminal decoder: keeps whatever the node gave us"""

    def decode(self, data, message):
        if data:
            text = f"Unrecognized revert data {encode_hex(data)}"
            if message:
                text = f"{message} ({encode_hex(data)})"
            selector = encode_hex(data[:4]) if len(data) >= 4 else None
            return RevertReason(code=RevertCode.UNKNOWN, message=text, selector=selector, data=encode_hex(data))
        return RevertReason(code=RevertCode.UNKNOWN, message=message or "execution reverted without data")


DECODERS: List[RevertDecoder] = [ErrorStringDecoder(), PanicDecoder(), CustomErrorDecoder(), RawDecoder()]


def decode_revert(data: bytes, message: str = "") -> RevertReason:
    for decoder in DECODERS:
        reason = decoder.decode(data, message)
        if reason is not None:
            return reason
    raise AssertionError("RawDecoder always decodes")


def derive_address(private_key: str) -> Optional[str]:
    if not private_key:
        return None
    try:
        return Account.from_key(private_key).address
    except (ValueError, TypeError):
        # Never echo the key itself
        logger.warning("PRIVATE_KEY is set but is not a valid key; ignoring it")
        return None


def select_sender(explicit: Optional[str], settings: Settings) -> str:
    """Caller address, then the configured key's address, then the fallback"""
    if explicit is not None:
        if not is_address(explicit):
            raise InvalidAddress(f"Not an Ethereum address: {explicit}", address=explicit)
        if explicit.lower() == ZERO_ADDRESS:
            raise InvalidAddress("The zero address cannot send transactions", address=explicit)
        return to_checksum_address(explicit)
    derived = derive_address(settings.PRIVATE_KEY)
    if derived is not None:
        return derived
    return to_checksum_address(settings.SIMULATION_FALLBACK_ADDRESS)


class SimulationExecutor:
    def __init__(self, settings: Settings, gateway: ChainGateway):
        self.settings = settings
        self.gateway = gateway
        self.router_address = settings.ROUTER_ADDRESS

    async def simulate_swap(self, quote: Quote, from_address: Optional[str] = None) -> SimulationOutcome:
        """
        Run the quoted swap against the router without sending it.

        A revert is a normal outcome, reported with a decoded reason.
        """
        sender = select_sender(from_address, self.settings)
        call = SwapExactTokensForTokens(
            amount_in=quote.amount_in.value,
            amount_out_min=quote.minimum_out.value,
            path=quote.route.path,
            to=sender,
            deadline=UINT256_MAX
        )
        data = call.encode()
        result = await self.gateway.simulate_call(self.router_address, data, sender)

        if not result.success:
            reason = decode_revert(result.revert_data, result.message)
            logger.warning(f"Swap simulation from {sender} reverted: {reason.code.value} {reason.message}")
            return SimulationOutcome(success=False, sender=sender, quote=quote, revert=reason)

        simulated_output = None
        matches = None
        try:
            amounts = call.decode(result.return_data)
            if amounts:
                simulated_output = amounts[-1]
                matches = simulated_output == quote.amount_out.value
        except GatewayError as e:
            logger.warning(f"Could not decode router amounts: {e.message}")
        if matches is False:
            logger.warning(
                f"Simulated output {simulated_output} differs from quoted {quote.amount_out.value}; reserves moved?"
            )

        gas_estimate = None
        gas_warning = False
        try:
            gas_estimate = await self.gateway.estimate_gas(self.router_address, data, sender)
        except EstimationFailed as e:
            logger.warning(f"Gas estimation failed after a successful simulation: {e.message}")
            gas_warning = True

        return SimulationOutcome(
            success=True,
            sender=sender,
            quote=quote,
            gas_estimate=gas_estimate,
            gas_estimate_warning=gas_warning,
            simulated_output=simulated_output,
            output_matches_quote=matches
        )
