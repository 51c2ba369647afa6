from decimal import Decimal

import pytest

from shop.pricing.engine import CartLineItem, compute_subtotal, compute_totals
from shop.pricing.policies import flat_shipping, flat_tax
from shop.utils.money import to_money


def item(price, qty=1, pid="p1", variant=None):
    return CartLineItem(product_id=pid, unit_price=Decimal(price), quantity=qty, variant_id=variant)


def test_scenario_welcome10_totals(shipping_policy, tax_policy):
    totals = compute_totals([item("100.00")], Decimal("10.00"), shipping_policy, tax_policy)

    assert totals.subtotal == Decimal("100.00")
    assert totals.discount == Decimal("10.00")
    assert totals.shipping == Decimal("0.00")
    assert totals.tax == Decimal("7.20")
    assert totals.total == Decimal("97.20")


def test_no_discount(shipping_policy, tax_policy):
    totals = compute_totals([item("12.50", 2), item("5.00", 1, pid="p2")], 0, shipping_policy, tax_policy)

    assert totals.subtotal == Decimal("30.00")
    assert totals.discount == Decimal("0.00")
    assert totals.shipping == Decimal("10.00")
    assert totals.tax == Decimal("2.40")
    assert totals.total == Decimal("42.40")


def test_subtotal_rounded_after_summation():
    # по строкам вышло бы 0.01 + 0.01
    assert compute_subtotal([item("0.005"), item("0.005", pid="p2")]) == Decimal("0.01")
    assert compute_subtotal([item("0.333", 3)]) == Decimal("1.00")


def test_shipping_uses_discounted_subtotal(shipping_policy, tax_policy):
    # 55 - 5 = 50 → бесплатно (порог включительно)
    free = compute_totals([item("55.00")], Decimal("5.00"), shipping_policy, tax_policy)
    assert free.shipping == Decimal("0.00")

    # 55 - 5.01 = 49.99 → платно
    paid = compute_totals([item("55.00")], Decimal("5.01"), shipping_policy, tax_policy)
    assert paid.shipping == Decimal("10.00")


def test_total_clamped_at_zero():
    zero = flat_tax(0)
    totals = compute_totals([item("20.00")], Decimal("30.00"), zero, zero)
    assert totals.total == Decimal("0.00")


def test_negative_policy_rejected(tax_policy):
    with pytest.raises(ValueError, match="shipping"):
        compute_totals([item("10.00")], 0, lambda amount: Decimal("-1"), tax_policy)


def test_negative_discount_rejected(shipping_policy, tax_policy):
    with pytest.raises(ValueError):
        compute_totals([item("10.00")], Decimal("-0.01"), shipping_policy, tax_policy)


@pytest.mark.parametrize(
    "prices, discount",
    [
        (["19.99", "0.01"], "0"),
        (["49.99"], "4.99"),
        (["10.10", "10.10", "10.10"], "3.03"),
        (["333.33"], "33.33"),
        (["0.99"], "0.99"),
    ],
)
def test_total_identity(prices, discount, shipping_policy, tax_policy):
    items = [item(p, pid=f"p{i}") for i, p in enumerate(prices)]
    t = compute_totals(items, Decimal(discount), shipping_policy, tax_policy)

    assert t.total == to_money(t.subtotal - t.discount + t.shipping + t.tax)
    assert min(t.subtotal, t.discount, t.shipping, t.tax, t.total) >= 0


def test_reproducible(shipping_policy, tax_policy):
    items = [item("17.35", 3), item("2.10", 7, pid="p2", variant="red")]
    assert compute_totals(items, Decimal("4.20"), shipping_policy, tax_policy) == \
        compute_totals(items, Decimal("4.20"), shipping_policy, tax_policy)


class TestLineItem:
    @pytest.mark.parametrize("qty", [0, -1, 1.5, True])
    def test_bad_quantity(self, qty):
        with pytest.raises(ValueError):
            CartLineItem(product_id="p1", unit_price=Decimal("1.00"), quantity=qty)

    def test_negative_price(self):
        with pytest.raises(ValueError):
            CartLineItem(product_id="p1", unit_price=Decimal("-0.01"), quantity=1)

    def test_missing_product(self):
        with pytest.raises(ValueError):
            CartLineItem(product_id="", unit_price=Decimal("1.00"), quantity=1)


class TestPolicies:
    def test_flat_shipping_threshold(self):
        policy = flat_shipping("10.00", "50.00")
        assert policy(Decimal("49.99")) == Decimal("10.00")
        assert policy(Decimal("50.00")) == Decimal("0.00")

    def test_flat_tax_rounds_half_up(self):
        assert flat_tax("0.08")(Decimal("0.5625")) == Decimal("0.05")
        assert flat_tax("0.10")(Decimal("0.25")) == Decimal("0.03")

    def test_negative_rate(self):
        with pytest.raises(ValueError):
            flat_tax("-0.01")
