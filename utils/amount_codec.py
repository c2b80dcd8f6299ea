# utils/amount_codec.py

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation, localcontext
from typing import Union

from exceptions import InvalidAmount

# One stroop is the smallest indivisible unit on the ledger.
STROOPS_PER_UNIT = Decimal(10) ** 7

# Contract arguments are i128.
I128_MAX = 2 ** 127 - 1
I128_DIGITS = len(str(I128_MAX))

AmountLike = Union[Decimal, int, float, str]


def _as_decimal(amount: AmountLike) -> Decimal:
    if isinstance(amount, bool):
        raise InvalidAmount(f"Amount must be numeric, got {amount!r}")
    if isinstance(amount, float):
        # str() keeps 0.1 as one tenth instead of its binary expansion
        amount = str(amount)
    try:
        return Decimal(amount)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise InvalidAmount(f"Amount {amount!r} is not a number") from e


def to_ledger_units(amount: AmountLike) -> int:
    """
    Converts a currency amount to stroops (10^7 per unit).

    Rounds half to even, which is what round() does for Decimal, so
    to_ledger_units(x) == round(Decimal(x) * 10**7) for every accepted x.
    """
    value = _as_decimal(amount)
    if not value.is_finite():
        raise InvalidAmount(f"Amount {amount!r} is not finite")
    if value < 0:
        raise InvalidAmount(f"Amount {amount!r} is negative")

    if value and value.adjusted() + 7 > I128_DIGITS:
        raise InvalidAmount(f"Amount {amount!r} does not fit in an i128")

    # Enough precision that scaling and rounding are exact for every input.
    with localcontext() as ctx:
        ctx.prec = max(I128_DIGITS + 10, len(value.as_tuple().digits) + 10)
        try:
            units = int((value * STROOPS_PER_UNIT).to_integral_value(rounding=ROUND_HALF_EVEN))
        except ArithmeticError as e:
            raise InvalidAmount(f"Amount {amount!r} cannot be scaled to stroops") from e
    if units > I128_MAX:
        raise InvalidAmount(f"Amount {amount!r} does not fit in an i128")
    return units
