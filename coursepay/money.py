# coursepay/money.py
"""
Currency arithmetic.

Amounts are integers in minor currency units everywhere inside the service.
Every rounding goes through ``round_half_up`` so that settlement and reporting
agree to the unit.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from coursepay.errors import ValidationError

COMMISSION_RATE = Decimal("0.15")

Number = Union[int, float, str, Decimal]


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_minor_units(value: Number, exponent: int = 0) -> int:
    """Convert a major-unit amount from the API boundary into minor units.

    Floats go through ``str`` so 199.99 stays 199.99. Fractions smaller than
    one minor unit are rejected rather than rounded.
    """
    try:
        amount = Decimal(str(value)) * (Decimal(10) ** exponent)
    except InvalidOperation as e:
        raise ValidationError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite() or amount != amount.to_integral_value():
        raise ValidationError(f"Amount {value} is not a whole number of minor units")
    return int(amount)


def from_minor_units(amount: int, exponent: int = 0) -> Decimal:
    return Decimal(amount) / (Decimal(10) ** exponent)


def instructor_share(amount: int, rate: Decimal = COMMISSION_RATE) -> int:
    return round_half_up(Decimal(amount) * (Decimal(1) - rate))


def gross_from_net(net: int, rate: Decimal = COMMISSION_RATE) -> int:
    return round_half_up(Decimal(net) / (Decimal(1) - rate))


def commission_from_net(net: int, rate: Decimal = COMMISSION_RATE) -> int:
    return gross_from_net(net, rate) - net
