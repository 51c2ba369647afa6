from typing import Iterable

from aiogram import Bot

from shop.config import MANAGERS
from shop.orders.model import Order
from shop.utils.logger import get_logger
from shop.utils.money import money_str

log = get_logger("notify")


def order_text(order: Order) -> str:
    t = order.totals
    text = (
        "🆕 НОВЫЙ ЗАКАЗ\n"
        f"🕒 Время: {order.created_at.strftime('%d.%m.%Y %H:%M')}\n\n"
        f"🧾 Заказ: {order.order_number}\n"
        f"📦 Позиций: {sum(i.quantity for i in order.items)}\n"
        f"💰 Подытог: {money_str(t.subtotal)}\n"
    )
    if order.promo_code:
        text += f"Промокод: {order.promo_code} (−{money_str(t.discount)})\n"
    text += (
        f"🚚 Доставка: {money_str(t.shipping)}\n"
        f"🧮 Налог: {money_str(t.tax)}\n"
        f"Итого: {money_str(t.total)}"
    )
    return text


async def notify_managers(bot: Bot, text: str, managers: Iterable[int] = MANAGERS):
    for manager_id in managers:
        try:
            await bot.send_message(manager_id, text, disable_web_page_preview=True)
        except Exception as e:
            log.warning("Failed to notify manager %s: %s", manager_id, e)
