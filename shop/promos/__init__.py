from pathlib import Path

from shop.promos.service import PromoService, PromoStorage
from shop.promos.storage import JsonPromoStorage


def create_promo_storage(pool=None, data_dir: Path | None = None, max_retries: int = 3) -> PromoStorage:
    if pool is not None:
        # ленивый импорт, чтобы в test-режиме вообще не трогать PG-код
        from shop.promos.pg_storage import PgPromoStorage
        return PgPromoStorage(pool, max_retries=max_retries)

    if data_dir is None:
        raise RuntimeError("data_dir is required for the JSON promo storage")

    return JsonPromoStorage(
        promos_path=str(data_dir / "promos.json"),
        redemptions_path=str(data_dir / "promo_redemptions.json"),
    )


__all__ = ["PromoService", "PromoStorage", "create_promo_storage"]
