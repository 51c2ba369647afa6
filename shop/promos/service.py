from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from shop.errors import PromoBelowMinimum, PromoNotActive, PromoNotFound
from shop.promos.model import (
    PromoCode,
    PromoEstimate,
    PromoEvaluation,
    RedeemResult,
    normalize_code,
)
from shop.promos.validator import BELOW_MINIMUM, evaluate
from shop.utils.money import Number, to_money


class PromoStorage(Protocol):
    async def get_promo(self, code: str) -> Optional[PromoCode]: ...

    async def save_promo(self, promo: PromoCode) -> PromoCode: ...

    async def delete_promo(self, code: str, force: bool = False) -> None: ...

    async def atomic_redeem(self, code: str) -> RedeemResult: ...

    async def compensate_rollback(self, redemption_id: str) -> bool: ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def raise_for_evaluation(promo: PromoCode, evaluation: PromoEvaluation, subtotal) -> None:
    if evaluation.eligible:
        return
    if evaluation.reason == BELOW_MINIMUM:
        raise PromoBelowMinimum(promo.code, promo.minimum_amount, to_money(subtotal))
    raise PromoNotActive(promo.code, evaluation.status.value)


class PromoService:
    """Оценка скидки для корзины. Результат только подсказка, не источник истины."""

    def __init__(self, storage: PromoStorage, clock: Callable[[], datetime] = utc_now):
        self.storage = storage
        self.clock = clock

    async def get(self, code: str) -> PromoCode:
        promo = await self.storage.get_promo(code)
        if not promo:
            raise PromoNotFound(normalize_code(code))
        return promo

    async def estimate(self, code: str, subtotal: Number, now: Optional[datetime] = None) -> PromoEstimate:
        promo = await self.get(code)
        subtotal = to_money(subtotal)

        evaluation = evaluate(promo, now or self.clock(), subtotal)
        raise_for_evaluation(promo, evaluation, subtotal)

        return PromoEstimate(
            code=promo.code,
            type=promo.type,
            value=promo.value,
            discount=evaluation.discount_amount,
            minimum_amount=promo.minimum_amount,
            maximum_discount=promo.maximum_discount,
            description=promo.description,
        )
