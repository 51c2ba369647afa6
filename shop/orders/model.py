from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal, Optional

from shop.pricing.engine import CartLineItem, OrderTotals
from shop.utils.money import money_str

OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]

_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number() -> str:
    # ORD-<последние 6 цифр ms-таймстемпа>-<6 символов>
    timestamp = str(int(time.time() * 1000))
    suffix = "".join(random.choices(_ALPHABET, k=6))
    return f"ORD-{timestamp[-6:]}-{suffix}"


@dataclass
class Order:
    order_number: str
    items: list[CartLineItem]
    totals: OrderTotals
    shipping_address: dict[str, Any]
    promo_code: Optional[str] = None
    redemption_id: Optional[str] = None
    status: OrderStatus = "pending"
    payment_status: PaymentStatus = "pending"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_record(self) -> dict[str, Any]:
        return {
            "order_number": self.order_number,
            "items": [
                {
                    "product_id": i.product_id,
                    "variant_id": i.variant_id,
                    "unit_price": money_str(i.unit_price),
                    "quantity": i.quantity,
                }
                for i in self.items
            ],
            "promo_code": self.promo_code,
            "redemption_id": self.redemption_id,
            "subtotal": money_str(self.totals.subtotal),
            "discount": money_str(self.totals.discount),
            "shipping": money_str(self.totals.shipping),
            "tax": money_str(self.totals.tax),
            "total": money_str(self.totals.total),
            "shipping_address": self.shipping_address,
            "status": self.status,
            "payment_status": self.payment_status,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> "Order":
        return cls(
            order_number=data["order_number"],
            items=[
                CartLineItem(
                    product_id=i["product_id"],
                    variant_id=i.get("variant_id"),
                    unit_price=Decimal(str(i["unit_price"])),
                    quantity=int(i["quantity"]),
                )
                for i in data.get("items", [])
            ],
            totals=OrderTotals(
                subtotal=Decimal(str(data["subtotal"])),
                discount=Decimal(str(data["discount"])),
                shipping=Decimal(str(data["shipping"])),
                tax=Decimal(str(data["tax"])),
                total=Decimal(str(data["total"])),
            ),
            shipping_address=data.get("shipping_address") or {},
            promo_code=data.get("promo_code"),
            redemption_id=data.get("redemption_id"),
            status=data.get("status", "pending"),
            payment_status=data.get("payment_status", "pending"),
            created_at=datetime.fromisoformat(data["created_at"]),
        )
