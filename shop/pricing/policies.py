from decimal import Decimal

from shop.pricing.engine import Policy
from shop.utils.money import ZERO, Number, to_decimal, to_money


def flat_shipping(fee: Number, free_threshold: Number) -> Policy:
    """Фикс. доставка; от free_threshold (включительно) бесплатно."""
    fee = to_money(fee)
    free_threshold = to_decimal(free_threshold)

    def policy(amount: Decimal) -> Decimal:
        return ZERO if amount >= free_threshold else fee

    return policy


def flat_tax(rate: Number) -> Policy:
    """Налог как доля от подытога со скидкой (0.08 = 8%)."""
    rate = to_decimal(rate)
    if rate < 0:
        raise ValueError("tax rate must be non-negative")

    def policy(amount: Decimal) -> Decimal:
        return to_money(amount * rate)

    return policy


def policies_from_config(cfg) -> tuple[Policy, Policy]:
    return (
        flat_shipping(cfg.shipping_fee, cfg.free_shipping_threshold),
        flat_tax(cfg.tax_rate),
    )
