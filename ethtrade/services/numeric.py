"""
Exact conversions between decimal strings and on-chain fixed-point integers.

Every value here is a Python int in the token's smallest unit. Nothing goes
through float, and results are bounded to what a uint256 slot can hold.
"""
import re

from ethtrade.errors import InvalidAmount, Overflow

UINT256_MAX = 2 ** 256 - 1

_DECIMAL_RE = re.compile(r"^(?P<whole>\d*)(?:\.(?P<frac>\d*))?$")


def _check_range(value: int) -> int:
    if value < 0 or value > UINT256_MAX:
        raise Overflow(f"Value {value} does not fit in uint256")
    return value


def _match(text: str):
    if not isinstance(text, str):
        raise InvalidAmount(f"Amount must be a string, got {type(text).__name__}")
    match = _DECIMAL_RE.match(text.strip())
    if not match or not (match.group("whole") or match.group("frac")):
        raise InvalidAmount(f"Not a non-negative decimal numeral: '{text}'", amount=text)
    return match


def decimal_places(text: str) -> int:
    """Fractional digits written in `text`; validates the numeral"""
    return len(_match(text).group("frac") or "")


def parse_decimal(text: str, decimals: int) -> int:
    """
    Parse a human decimal numeral into base units.

    Args:
        text: Non-negative decimal numeral such as "1.5" or "0.000001"
        decimals: Token decimal exponent

    Returns:
        Integer amount in the token's smallest unit
    """
    match = _match(text)
    whole = match.group("whole") or "0"
    frac = match.group("frac") or ""
    if len(frac) > decimals:
        raise InvalidAmount(
            f"Amount '{text}' has more than {decimals} fractional digits",
            amount=text,
            decimals=decimals
        )

    return _check_range(int(whole + frac.ljust(decimals, "0")))


def format_decimal(value: int, decimals: int) -> str:
    """Inverse of parse_decimal: trailing fractional zeros are stripped"""
    _check_range(value)
    if decimals == 0:
        return str(value)

    whole, frac = divmod(value, 10 ** decimals)
    frac_str = str(frac).rjust(decimals, "0").rstrip("0")
    if not frac_str:
        return str(whole)
    return f"{whole}.{frac_str}"


def scale(value: int, from_decimals: int, to_decimals: int) -> int:
    """Rescale a base-unit amount between decimal exponents without rounding"""
    if to_decimals >= from_decimals:
        return _check_range(value * 10 ** (to_decimals - from_decimals))

    quotient, remainder = divmod(value, 10 ** (from_decimals - to_decimals))
    if remainder:
        raise Overflow(
            f"{value} cannot be represented with {to_decimals} decimals",
            from_decimals=from_decimals,
            to_decimals=to_decimals
        )
    return _check_range(quotient)


def add(a: int, b: int) -> int:
    return _check_range(a + b)


def sub(a: int, b: int) -> int:
    return _check_range(a - b)


def mul_div(a: int, b: int, c: int) -> int:
    """floor(a * b / c); Python ints give the full-width intermediate"""
    if c == 0:
        raise InvalidAmount("Division by zero in mul_div")
    return _check_range((a * b) // c)


def format_ratio(numerator: int, denominator: int, places: int = 18) -> str:
    """Render numerator / denominator exactly, floored to `places` digits"""
    if denominator == 0:
        raise InvalidAmount("Ratio with zero denominator")
    if numerator < 0:
        raise InvalidAmount("Ratio must be non-negative")

    scaled = (numerator * 10 ** places) // denominator
    whole, frac = divmod(scaled, 10 ** places)
    frac_str = str(frac).rjust(places, "0").rstrip("0") if places else ""
    if not frac_str:
        return str(whole)
    return f"{whole}.{frac_str}"
