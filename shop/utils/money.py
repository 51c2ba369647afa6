from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP
from typing import Union

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Number) -> Decimal:
    """
    Приводит значение к Decimal без потери точности.
    float идёт через str(), чтобы 0.1 не превращался в 0.1000000000000000055...
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not a monetary amount")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a number: {value!r}") from e


def to_money(value: Number) -> Decimal:
    """Округление до копеек/центов, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_str(value: Decimal) -> str:
    return f"{to_money(value):.2f}"


def floor_money(value: Number) -> Decimal:
    """Отбрасывает доли цента, вниз. Для потолков, которые нельзя превысить."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_DOWN)


def has_cents_only(value: Number) -> bool:
    d = to_decimal(value)
    return d == d.quantize(CENT)
