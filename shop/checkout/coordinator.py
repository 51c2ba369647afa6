"""
Оформление заказа с промокодом.

Start → ReEvaluate → {без промо | промо не подходит [ошибка] | подходит}
      → AttemptRedeem → {погашен → Commit | лимит исчерпан [ошибка]}

Промокод перепроверяется по живой записи и текущему времени сервера,
результат из корзины не используется. Погашение делается только через
atomic_redeem хранилища. Если после погашения что-то упало (запись заказа,
finalize-шаг, отмена задачи), погашение откатывается ровно один раз.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from shop.errors import (
    InvalidOrderRequest,
    OrderTotalMismatch,
    PromoError,
    PromoInvalidAtCheckout,
    PromoNotFound,
    PromoRedeemConflict,
)
from shop.orders.model import Order, generate_order_number
from shop.pricing.engine import CartLineItem, OrderTotals, Policy, compute_subtotal, compute_totals
from shop.promos.model import PromoCode, PromoEvaluation, RedeemOutcome, RedeemResult, normalize_code
from shop.promos.service import PromoStorage, raise_for_evaluation, utc_now
from shop.promos.validator import evaluate
from shop.utils.logger import get_logger
from shop.utils.money import ZERO, to_money

log = get_logger("checkout")

TOTAL_FIELDS = ("subtotal", "discount", "shipping", "tax", "total")

Finalize = Callable[[Order], Awaitable[None]]


@dataclass(frozen=True)
class CheckoutRequest:
    items: list[CartLineItem]
    shipping_address: dict = field(default_factory=dict)
    promo_code: Optional[str] = None
    # суммы, которые прислал клиент; проверяются, но не используются
    client_totals: dict[str, Decimal] = field(default_factory=dict)


class CheckoutCoordinator:
    def __init__(
        self,
        promos: PromoStorage,
        orders,
        shipping_policy: Policy,
        tax_policy: Policy,
        clock: Callable[[], datetime] = utc_now,
        tolerance: Decimal = Decimal("0.01"),
    ):
        self.promos = promos
        self.orders = orders
        self.shipping_policy = shipping_policy
        self.tax_policy = tax_policy
        self.clock = clock
        self.tolerance = tolerance

    async def _re_evaluate(self, code: str, subtotal: Decimal) -> tuple[PromoCode, PromoEvaluation]:
        promo = await self.promos.get_promo(code)
        if promo is None:
            raise PromoInvalidAtCheckout(code, "not found") from PromoNotFound(code)

        evaluation = evaluate(promo, self.clock(), subtotal)
        if not evaluation.eligible:
            try:
                raise_for_evaluation(promo, evaluation, subtotal)
            except PromoError as e:
                log.info("Checkout: promo %s rejected (%s)", promo.code, evaluation.reason)
                raise PromoInvalidAtCheckout(promo.code, evaluation.reason) from e

        return promo, evaluation

    def _check_client_totals(self, client_totals: dict[str, Decimal], totals: OrderTotals) -> None:
        server = totals.as_dict()
        for name in TOTAL_FIELDS:
            if name not in client_totals or client_totals[name] is None:
                continue
            client = to_money(client_totals[name])
            if abs(client - server[name]) > self.tolerance:
                log.info("Checkout: %s mismatch (client=%s, server=%s)", name, client, server[name])
                raise OrderTotalMismatch(name, client, server[name])

    async def _redeem(self, code: str) -> RedeemResult:
        result = await self.promos.atomic_redeem(code)

        if result.outcome == RedeemOutcome.BUSY:
            log.warning("Checkout: promo %s busy after %s attempts", code, result.attempts)
            raise PromoRedeemConflict(code)

        if result.outcome == RedeemOutcome.LIMIT_REACHED:
            log.info("Checkout: promo %s limit reached at redemption", code)
            raise PromoInvalidAtCheckout(code, "limit-reached")

        log.info("Checkout: promo %s redeemed (%s), used_count=%s",
                 code, result.redemption_id, result.used_count)
        return result

    async def _release(self, order: Order, persisted: bool, error: BaseException) -> None:
        # сбои отката не заменяют исходную ошибку, а дописываются к ней заметкой
        if order.redemption_id:
            try:
                rolled_back = await self.promos.compensate_rollback(order.redemption_id)
                log.info("Checkout: rollback of %s for %s → %s",
                         order.redemption_id, order.order_number, rolled_back)
            except Exception as e:
                log.exception("Checkout: rollback of redemption %s failed", order.redemption_id)
                hint = f"abort({order.order_number}) to retry" if persisted else "manual fix needed"
                error.add_note(
                    f"promo redemption {order.redemption_id} was not rolled back ({e!r}); {hint}"
                )

        if persisted:
            try:
                await self.orders.mark_cancelled(order.order_number)
            except Exception as e:
                log.exception("Checkout: failed to cancel order %s", order.order_number)
                error.add_note(f"order {order.order_number} was not cancelled ({e!r})")

    async def checkout(self, request: CheckoutRequest, finalize: Optional[Finalize] = None) -> Order:
        if not request.items:
            raise InvalidOrderRequest("Order items are required")

        subtotal = compute_subtotal(request.items)
        code = normalize_code(request.promo_code) if request.promo_code else ""

        discount = ZERO
        if code:
            _, evaluation = await self._re_evaluate(code, subtotal)
            discount = evaluation.discount_amount

        # расчёт и сверка сумм идут до погашения
        totals = compute_totals(request.items, discount, self.shipping_policy, self.tax_policy)
        self._check_client_totals(request.client_totals, totals)

        redemption = await self._redeem(code) if code else None

        order = Order(
            order_number=generate_order_number(),
            items=list(request.items),
            totals=totals,
            shipping_address=request.shipping_address,
            promo_code=code or None,
            redemption_id=redemption.redemption_id if redemption else None,
        )

        persisted = False
        try:
            await self.orders.create(order)
            persisted = True
            if finalize is not None:
                await finalize(order)
        except BaseException as e:
            # включая CancelledError
            log.warning("Checkout: order %s failed after redemption step, releasing", order.order_number)
            await self._release(order, persisted, e)
            raise

        log.info("Checkout: order %s committed, total=%s, promo=%s",
                 order.order_number, totals.total, order.promo_code or "—")
        return order

    async def abort(self, order_number: str) -> bool:
        """
        Отмена ещё не оплаченного заказа (например, платёж отвалился позже).
        Повторный вызов безопасен: погашение откатывается только один раз.
        Для уже отменённого заказа дожимает откат, если при checkout он не прошёл.
        """
        order = await self.orders.get(order_number)
        if order is None:
            return False

        cancelled = await self.orders.mark_cancelled(order_number)
        # оплаченные/отгруженные заказы слот не возвращают
        if order.redemption_id and (cancelled or order.status == "cancelled"):
            rolled_back = await self.promos.compensate_rollback(order.redemption_id)
            log.info("Abort %s: cancelled=%s, rollback=%s", order_number, cancelled, rolled_back)

        return cancelled
