"""
Подсчёт итоговой суммы заказа.

total зависит только от (позиции, скидка, shipping_policy, tax_policy),
поэтому сервер всегда может пересчитать сумму сам и не доверять клиенту.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, Optional

from shop.utils.money import ZERO, Number, to_decimal, to_money

Policy = Callable[[Decimal], Number]


@dataclass(frozen=True)
class CartLineItem:
    product_id: str
    unit_price: Decimal
    quantity: int
    variant_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "unit_price", to_decimal(self.unit_price))
        if not self.product_id:
            raise ValueError("productId is required")
        if self.unit_price < 0:
            raise ValueError("unitPrice must be non-negative")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity < 1:
            raise ValueError("quantity must be an integer >= 1")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "discount": self.discount,
            "shipping": self.shipping,
            "tax": self.tax,
            "total": self.total,
        }


def compute_subtotal(items: Iterable[CartLineItem]) -> Decimal:
    # округляем один раз, после суммы
    return to_money(sum((i.line_total for i in items), ZERO))


def _apply_policy(name: str, policy: Policy, base: Decimal) -> Decimal:
    amount = to_money(policy(base))
    if amount < 0:
        raise ValueError(f"{name} policy returned a negative amount: {amount}")
    return amount


def compute_totals(
    items: Iterable[CartLineItem],
    discount_amount: Number,
    shipping_policy: Policy,
    tax_policy: Policy,
) -> OrderTotals:
    subtotal = compute_subtotal(items)

    discount = to_money(discount_amount or 0)
    if discount < 0:
        raise ValueError("discount must be non-negative")

    discounted = max(subtotal - discount, ZERO)
    shipping = _apply_policy("shipping", shipping_policy, discounted)
    tax = _apply_policy("tax", tax_policy, discounted)

    total = to_money(max(subtotal - discount + shipping + tax, ZERO))

    return OrderTotals(
        subtotal=subtotal,
        discount=discount,
        shipping=shipping,
        tax=tax,
        total=total,
    )
