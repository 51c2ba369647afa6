from pathlib import Path

from shop.orders.model import Order, generate_order_number
from shop.orders.storage import JsonOrderStorage


def create_order_storage(pool=None, data_dir: Path | None = None):
    if pool is not None:
        from shop.orders.pg_storage import PgOrderStorage
        return PgOrderStorage(pool)

    if data_dir is None:
        raise RuntimeError("data_dir is required for the JSON order storage")

    return JsonOrderStorage(str(data_dir / "orders.json"))


__all__ = ["Order", "generate_order_number", "create_order_storage"]
