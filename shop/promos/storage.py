import asyncio
import json
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from shop.errors import PromoInUse, PromoNotFound
from shop.promos.model import (
    PromoCode,
    PromoType,
    RedeemOutcome,
    RedeemResult,
    normalize_code,
    validate_promo,
)
from shop.utils.logger import get_logger
from shop.utils.money import money_str

log = get_logger("promos.json")


def _parse_dt(value: Any) -> Optional[datetime]:
    if value in (None, "", 0):
        return None
    # ISO-строка
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _dump_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _promo_from_raw(code: str, raw: dict) -> PromoCode:
    return PromoCode(
        code=code,
        type=PromoType(raw["type"]),
        value=raw["value"],
        minimum_amount=raw.get("minimum_amount") or 0,
        maximum_discount=raw.get("maximum_discount"),
        usage_limit=raw.get("usage_limit"),
        used_count=int(raw.get("used_count", 0)),
        valid_from=_parse_dt(raw["valid_from"]),
        valid_until=_parse_dt(raw["valid_until"]),
        is_active=bool(raw.get("is_active", True)),
        description=raw.get("description"),
        created_at=_parse_dt(raw.get("created_at")),
        updated_at=_parse_dt(raw.get("updated_at")),
    )


def _promo_to_raw(promo: PromoCode) -> dict:
    return {
        "type": promo.type.value,
        "value": str(promo.value),
        "minimum_amount": money_str(promo.minimum_amount),
        "maximum_discount": str(promo.maximum_discount) if promo.maximum_discount is not None else None,
        "usage_limit": promo.usage_limit,
        "used_count": promo.used_count,
        "valid_from": _dump_dt(promo.valid_from),
        "valid_until": _dump_dt(promo.valid_until),
        "is_active": promo.is_active,
        "description": promo.description,
        "created_at": _dump_dt(promo.created_at),
        "updated_at": _dump_dt(promo.updated_at),
    }


class JsonPromoStorage:
    """
    Хранилище промокодов в JSON (test-режим).

    Все изменения идут под одним asyncio.Lock: проверка лимита и инкремент
    used_count выполняются внутри одной критической секции, между ними
    никто не вклинится.
    """

    def __init__(self, promos_path: str, redemptions_path: str):
        self.promos_path = promos_path
        self.redemptions_path = redemptions_path
        self._lock = asyncio.Lock()

    def _read_json(self, path: str) -> dict:
        if not os.path.exists(path):
            return {}
        with open(path, "r", encoding="utf-8") as f:
            try:
                return json.load(f)
            except json.JSONDecodeError:
                log.warning("Broken JSON in %s, treating as empty", path)
                return {}

    def _atomic_write_json(self, path: str, data: dict) -> None:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp = f"{path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp, path)

    async def get_promo(self, code: str) -> Optional[PromoCode]:
        code = normalize_code(code)
        async with self._lock:
            all_promos = self._read_json(self.promos_path)

        raw = all_promos.get(code)
        if not raw:
            return None

        return _promo_from_raw(code, raw)

    async def save_promo(self, promo: PromoCode) -> PromoCode:
        validate_promo(promo)
        now = datetime.now(timezone.utc)

        async with self._lock:
            all_promos = self._read_json(self.promos_path)
            existing = all_promos.get(promo.code)
            created_at = _parse_dt(existing.get("created_at")) if existing else None

            raw = _promo_to_raw(promo)
            raw["created_at"] = _dump_dt(created_at or promo.created_at or now)
            raw["updated_at"] = _dump_dt(now)
            if existing:
                # used_count правит только погашение/откат
                raw["used_count"] = int(existing.get("used_count", 0))
                if promo.usage_limit is not None and raw["used_count"] > promo.usage_limit:
                    raise ValueError("Used count cannot exceed usage limit")

            all_promos[promo.code] = raw
            self._atomic_write_json(self.promos_path, all_promos)

        return _promo_from_raw(promo.code, raw)

    async def delete_promo(self, code: str, force: bool = False) -> None:
        code = normalize_code(code)
        async with self._lock:
            all_promos = self._read_json(self.promos_path)
            raw = all_promos.get(code)
            if not raw:
                raise PromoNotFound(code)

            used = int(raw.get("used_count", 0))
            if used > 0 and not force:
                raise PromoInUse(code, used)

            # погашения удалённого кода не должны откатываться в новую запись с тем же кодом
            redemptions = self._read_json(self.redemptions_path)
            kept = {rid: entry for rid, entry in redemptions.items() if entry.get("promo_code") != code}
            if len(kept) != len(redemptions):
                self._atomic_write_json(self.redemptions_path, kept)

            del all_promos[code]
            self._atomic_write_json(self.promos_path, all_promos)

        if used > 0:
            log.warning("Promo %s deleted with used_count=%s (forced)", code, used)

    async def atomic_redeem(self, code: str) -> RedeemResult:
        code = normalize_code(code)

        async with self._lock:
            all_promos = self._read_json(self.promos_path)
            raw = all_promos.get(code)
            if not raw:
                raise PromoNotFound(code)

            used = int(raw.get("used_count", 0))
            limit = raw.get("usage_limit")
            if limit is not None and used >= int(limit):
                return RedeemResult(outcome=RedeemOutcome.LIMIT_REACHED, used_count=used)

            now = datetime.now(timezone.utc)
            redemption_id = uuid.uuid4().hex
            raw["used_count"] = used + 1
            raw["updated_at"] = _dump_dt(now)

            redemptions = self._read_json(self.redemptions_path)
            redemptions[redemption_id] = {
                "promo_code": code,
                "created_at": _dump_dt(now),
                "rolled_back_at": None,
            }

            # журнал пишется раньше счётчика
            self._atomic_write_json(self.redemptions_path, redemptions)
            self._atomic_write_json(self.promos_path, all_promos)

        return RedeemResult(
            outcome=RedeemOutcome.REDEEMED,
            redemption_id=redemption_id,
            used_count=used + 1,
        )

    async def compensate_rollback(self, redemption_id: str) -> bool:
        """
        Отменяет одно погашение. True возвращается только при первом вызове,
        повторные вызовы с тем же redemption_id ничего не меняют.
        """
        async with self._lock:
            redemptions = self._read_json(self.redemptions_path)
            entry = redemptions.get(redemption_id)
            if not entry or entry.get("rolled_back_at"):
                return False

            now = datetime.now(timezone.utc)
            entry["rolled_back_at"] = _dump_dt(now)

            all_promos = self._read_json(self.promos_path)
            raw = all_promos.get(entry["promo_code"])
            if raw:
                raw["used_count"] = max(0, int(raw.get("used_count", 0)) - 1)
                raw["updated_at"] = _dump_dt(now)
                self._atomic_write_json(self.promos_path, all_promos)

            self._atomic_write_json(self.redemptions_path, redemptions)

        return True
