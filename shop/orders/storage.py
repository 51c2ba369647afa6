import asyncio
import json
import os
from typing import Any, Optional

from shop.orders.model import Order


class JsonOrderStorage:
    def __init__(self, path: str = "data/orders.json"):
        self.path = path
        self._lock = asyncio.Lock()

    def _load(self) -> dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            try:
                return json.load(f)
            except json.JSONDecodeError:
                return {}

    def _save(self, data: dict[str, Any]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp = f"{self.path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp, self.path)

    async def create(self, order: Order) -> None:
        async with self._lock:
            data = self._load()
            if order.order_number in data:
                raise ValueError(f"Order {order.order_number} already exists")
            data[order.order_number] = order.to_record()
            self._save(data)

    async def get(self, order_number: str) -> Optional[Order]:
        async with self._lock:
            raw = self._load().get(order_number)
        return Order.from_record(raw) if raw else None

    async def mark_cancelled(self, order_number: str) -> bool:
        # только pending → cancelled/failed, повторный вызов вернёт False
        async with self._lock:
            data = self._load()
            raw = data.get(order_number)
            if not raw or raw.get("status") != "pending":
                return False
            raw["status"] = "cancelled"
            raw["payment_status"] = "failed"
            self._save(data)
            return True
