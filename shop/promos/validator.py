"""
Чистые функции: статус промокода и сумма скидки.

Никаких часов и I/O внутри: `now` и подытог корзины передаются снаружи,
поэтому одинаковые входные данные всегда дают одинаковый результат.
Статус нигде не хранится и каждый раз вычисляется заново.
"""
from datetime import datetime, timezone
from decimal import Decimal

from shop.promos.model import PromoCode, PromoEvaluation, PromoStatus, PromoType
from shop.utils.money import ZERO, Number, floor_money, to_decimal, to_money

BELOW_MINIMUM = "below minimum"


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def derive_status(promo: PromoCode, now: datetime) -> PromoStatus:
    # порядок важен: первое совпадение выигрывает
    now = _as_utc(now)

    if not promo.is_active:
        return PromoStatus.INACTIVE
    if now < promo.valid_from:
        return PromoStatus.UPCOMING
    if now > promo.valid_until:
        return PromoStatus.EXPIRED
    if promo.usage_limit is not None and promo.used_count >= promo.usage_limit:
        return PromoStatus.LIMIT_REACHED
    return PromoStatus.ACTIVE


def compute_discount(promo: PromoCode, cart_subtotal: Number) -> Decimal:
    subtotal = to_decimal(cart_subtotal)
    if subtotal <= 0:
        return ZERO

    if promo.type == PromoType.PERCENTAGE:
        discount = to_money(subtotal * promo.value / 100)
        if promo.maximum_discount is not None:
            # потолок применяется после округления и сам округляется вниз
            discount = min(discount, floor_money(promo.maximum_discount))
    elif promo.type == PromoType.FIXED:
        # фикс. скидка не может увести подытог в минус
        discount = to_money(min(promo.value, subtotal))
    else:
        raise ValueError(f"Unknown promo type: {promo.type!r}")

    return max(discount, ZERO)


def evaluate(promo: PromoCode, now: datetime, cart_subtotal: Number) -> PromoEvaluation:
    status = derive_status(promo, now)
    if status != PromoStatus.ACTIVE:
        return PromoEvaluation(status=status, eligible=False, reason=status.value)

    subtotal = to_decimal(cart_subtotal)
    if subtotal < promo.minimum_amount:
        return PromoEvaluation(status=status, eligible=False, reason=BELOW_MINIMUM)

    return PromoEvaluation(
        status=status,
        eligible=True,
        discount_amount=compute_discount(promo, subtotal),
    )
