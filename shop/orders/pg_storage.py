from __future__ import annotations

import json
from typing import Optional

import asyncpg

from shop.orders.model import Order


class PgOrderStorage:
    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def create(self, order: Order) -> None:
        rec = order.to_record()

        sql = """
        INSERT INTO orders (
            order_number, items, promo_code, redemption_id,
            subtotal, discount, shipping, tax, total,
            shipping_address, status, payment_status, created_at
        )
        VALUES ($1,$2::jsonb,$3,$4,$5,$6,$7,$8,$9,$10::jsonb,$11,$12,$13)
        """
        async with self.pool.acquire() as conn:
            await conn.execute(
                sql,
                order.order_number,
                json.dumps(rec["items"]),
                order.promo_code,
                order.redemption_id,
                order.totals.subtotal,
                order.totals.discount,
                order.totals.shipping,
                order.totals.tax,
                order.totals.total,
                json.dumps(order.shipping_address),
                order.status,
                order.payment_status,
                order.created_at,
            )

    async def get(self, order_number: str) -> Optional[Order]:
        sql = """
        SELECT order_number, items, promo_code, redemption_id,
               subtotal, discount, shipping, tax, total,
               shipping_address, status, payment_status, created_at
          FROM orders
         WHERE order_number = $1
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(sql, order_number)

        if not row:
            return None

        data = dict(row)
        data["items"] = json.loads(row["items"])
        data["shipping_address"] = json.loads(row["shipping_address"])
        data["created_at"] = row["created_at"].isoformat()
        return Order.from_record(data)

    async def mark_cancelled(self, order_number: str) -> bool:
        sql = """
        UPDATE orders
        SET status='cancelled', payment_status='failed'
        WHERE order_number=$1 AND status='pending'
        """
        async with self.pool.acquire() as conn:
            res = await conn.execute(sql, order_number)
        # res: "UPDATE <n>"
        return res.split()[-1].isdigit() and int(res.split()[-1]) > 0
