"""Decimal/unit conversion — the only place human amounts meet native integers.

All conversions of amounts that end up on-chain go through ``Decimal`` and
integer arithmetic.  Binary floats are accepted as *input* only via their
shortest ``repr`` and never used for the conversion itself.
"""

from __future__ import annotations

from decimal import Context, Decimal, InvalidOperation

from src.core.errors import InvalidAmount
from src.orchestrator.models import AmountQuantity, TokenRef

DEFAULT_DECIMALS = 18

# Wide enough for any uint256 at any precision
_CTX = Context(prec=200)


def _to_decimal(amount: str | int | Decimal | float) -> Decimal:
    if isinstance(amount, bool):
        raise InvalidAmount(f"Not an amount: {amount!r}")
    if isinstance(amount, Decimal):
        value = amount
    elif isinstance(amount, int):
        value = Decimal(amount)
    elif isinstance(amount, float):
        value = Decimal(repr(amount))
    elif isinstance(amount, str):
        try:
            value = Decimal(amount.strip())
        except InvalidOperation:
            raise InvalidAmount(f"Not a decimal amount: {amount!r}") from None
    else:
        raise InvalidAmount(f"Not an amount: {amount!r}")

    if not value.is_finite():
        raise InvalidAmount(f"Amount must be finite, got {amount!r}")
    if value < 0:
        raise InvalidAmount(f"Amount must be non-negative, got {amount!r}")
    return value


def parse_units(amount: str | int | Decimal | float, decimals: int) -> int:
    """Human amount → native integer.  Rejects precision the token can't hold."""
    value = _to_decimal(amount)
    scaled = value.scaleb(decimals, context=_CTX)
    if scaled != scaled.to_integral_value(context=_CTX):
        raise InvalidAmount(f"{amount} has more than {decimals} decimal places")
    return int(scaled)


def format_units(native: int, decimals: int) -> str:
    """Native integer → human string (``"1.0"``, ``"0.5"``, ``"1.000001"``)."""
    if native < 0:
        raise InvalidAmount(f"Native amount must be non-negative, got {native}")
    if decimals == 0:
        return str(native)
    whole, frac = divmod(native, 10**decimals)
    frac_str = str(frac).rjust(decimals, "0").rstrip("0") or "0"
    return f"{whole}.{frac_str}"


def to_native(token: TokenRef, amount: str | int | Decimal | float) -> int:
    return parse_units(amount, token.decimals)


def to_human(token: TokenRef, native: int) -> str:
    return format_units(native, token.decimals)


def to_decimal(token: TokenRef, native: int) -> Decimal:
    """Native integer → exact Decimal (display / snapshot fields)."""
    return Decimal(native).scaleb(-token.decimals, context=_CTX)


def quantity(token: TokenRef, amount: str | int | Decimal | float) -> AmountQuantity:
    native = to_native(token, amount)
    return AmountQuantity(token=token, human=to_human(token, native), native=native)


def quantity_from_native(token: TokenRef, native: int) -> AmountQuantity:
    return AmountQuantity(token=token, human=to_human(token, native), native=native)


def require_positive(q: AmountQuantity) -> AmountQuantity:
    if q.native <= 0:
        raise InvalidAmount(f"Amount must be greater than zero ({q.human} {q.token.symbol})")
    return q


def ceil_div(a: int, b: int) -> int:
    return -(-a // b)


def scale_native(native: int, from_decimals: int, to_decimals: int, *, round_up: bool = False) -> int:
    """Rescale a native amount between precisions (e.g. 6-decimal USDC → 18)."""
    if to_decimals >= from_decimals:
        return native * 10 ** (to_decimals - from_decimals)
    divisor = 10 ** (from_decimals - to_decimals)
    return ceil_div(native, divisor) if round_up else native // divisor


def apply_bps_haircut(native: int, bps: int) -> int:
    """``native × (10000 − bps) / 10000``, rounded down."""
    return native * (10_000 - bps) // 10_000
