"""
Fixed-Point Price Arithmetic.

Prices and volumes are carried as plain Python ints scaled by
10**decimals. Conversion goes through Decimal so that exchange strings
such as "0.1" scale exactly, and all later arithmetic stays integral.

Conventions:
- to_fixed_point() rounds half away from zero.
- volume_to_fixed() truncates extra digits.
- invert_price() and vwap() use truncating integer division.
"""

import logging
from decimal import (
    ROUND_DOWN,
    ROUND_HALF_UP,
    Decimal,
    InvalidOperation,
    localcontext,
)
from typing import Any

from exchange_prices.exceptions import InvalidNumberError


logger = logging.getLogger(__name__)


VOLUME_DECIMALS = 7
DEFAULT_PRICE_DECIMALS = 7

# Enough digits for a 10**(2 * decimals) scaled quote volume
_SCALE_PRECISION = 80


def to_decimal(value: Any) -> Decimal:
    """Parse a number or numeric string into a Decimal."""
    if value is None or isinstance(value, bool):
        raise InvalidNumberError(f"Not a number: {value!r}", value=value)
    if isinstance(value, Decimal):
        return value
    if not isinstance(value, (int, float, str)):
        raise InvalidNumberError(
            f"Unsupported number type: {type(value).__name__}",
            value=value,
        )
    try:
        if isinstance(value, int):
            result = Decimal(value)
        elif isinstance(value, float):
            result = Decimal(repr(value))
        else:
            result = Decimal(value.strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidNumberError(
            f"Not a number: {value!r}",
            value=value,
            original_error=e,
        )
    return result


def _is_nan(value: Any) -> bool:
    try:
        return to_decimal(value).is_nan()
    except InvalidNumberError:
        return True


def _scale(value: Decimal, decimals: int, rounding: str) -> int:
    with localcontext() as ctx:
        ctx.prec = _SCALE_PRECISION
        return int(value.scaleb(decimals).to_integral_value(rounding=rounding))


def to_fixed_point(value: Any, decimals: int) -> int:
    """
    Convert a decimal value to a scaled integer.

    Args:
        value: int, float, Decimal or numeric string
        decimals: Number of implied fractional digits

    Returns:
        round(value * 10**decimals)

    Raises:
        InvalidNumberError: If the value is not a finite number
    """
    if not isinstance(decimals, int) or isinstance(decimals, bool):
        raise InvalidNumberError(f"Decimals must be an int: {decimals!r}", value=decimals)
    parsed = to_decimal(value)
    if not parsed.is_finite():
        raise InvalidNumberError(f"Not a finite number: {value!r}", value=value)
    return _scale(parsed, decimals, ROUND_HALF_UP)


def invert_price(price: int, decimals: int) -> int:
    """
    Invert a scaled price (e.g. USD/BTC -> BTC/USD).

    A zero price means "unknown" and inverts to zero.
    """
    if price == 0:
        return 0
    if not isinstance(price, int) or isinstance(price, bool):
        raise TypeError("Price should be expressed as a scaled int")
    return 10 ** (decimals * 2) // price


def vwap(volume: Any, quote_volume: Any, decimals: int) -> int:
    """
    Volume weighted average price: quote_volume / volume, scaled.

    Returns 0 when either input is NaN or scales to zero.
    """
    if _is_nan(volume) or _is_nan(quote_volume):
        return 0
    scaled_volume = to_fixed_point(volume, decimals)
    # quote volume carries twice the decimals so the quotient keeps `decimals`
    scaled_quote_volume = to_fixed_point(quote_volume, decimals * 2)
    if scaled_volume == 0 or scaled_quote_volume == 0:
        return 0
    return scaled_quote_volume // scaled_volume


def volume_to_fixed(value: Any, decimals: int = VOLUME_DECIMALS) -> int:
    """
    Convert an exchange volume to a scaled int, truncating extra digits.

    Empty and malformed values map to 0.
    """
    if not value:
        return 0
    try:
        parsed = to_decimal(value)
    except InvalidNumberError:
        logger.debug(f"Invalid volume value {value!r}, using 0")
        return 0
    if not parsed.is_finite():
        return 0
    return _scale(parsed, decimals, ROUND_DOWN)


