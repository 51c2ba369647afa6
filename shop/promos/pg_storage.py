from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Optional

import asyncpg

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

log = get_logger("promos.pg")

_RETRYABLE = (
    asyncpg.exceptions.SerializationError,
    asyncpg.exceptions.DeadlockDetectedError,
    asyncpg.exceptions.LockNotAvailableError,
)

_COLUMNS = """
    code,
    description,
    type,
    value,
    minimum_amount,
    maximum_discount,
    usage_limit,
    used_count,
    valid_from,
    valid_until,
    is_active,
    created_at,
    updated_at
"""


def _row_to_promo(row) -> PromoCode:
    return PromoCode(
        code=row["code"],
        type=PromoType(row["type"]),
        value=row["value"],
        minimum_amount=row["minimum_amount"],
        maximum_discount=row["maximum_discount"],
        usage_limit=row["usage_limit"],
        used_count=int(row["used_count"]),
        valid_from=row["valid_from"],
        valid_until=row["valid_until"],
        is_active=row["is_active"],
        description=row["description"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PgPromoStorage:
    def __init__(self, pool: asyncpg.Pool, max_retries: int = 3, retry_delay: float = 0.05):
        self.pool = pool
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    async def get_promo(self, code: str) -> Optional[PromoCode]:
        sql = f"SELECT {_COLUMNS} FROM promos WHERE code = $1"
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(sql, normalize_code(code))

        if not row:
            return None

        return _row_to_promo(row)

    async def save_promo(self, promo: PromoCode) -> PromoCode:
        validate_promo(promo)

        # used_count при обновлении не трогаем, его меняет только погашение/откат
        sql = f"""
        INSERT INTO promos (
            code, description, type, value, minimum_amount, maximum_discount,
            usage_limit, used_count, valid_from, valid_until, is_active,
            created_at, updated_at
        )
        VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10,$11, now(), now())
        ON CONFLICT (code) DO UPDATE
        SET
            description = EXCLUDED.description,
            type = EXCLUDED.type,
            value = EXCLUDED.value,
            minimum_amount = EXCLUDED.minimum_amount,
            maximum_discount = EXCLUDED.maximum_discount,
            usage_limit = EXCLUDED.usage_limit,
            valid_from = EXCLUDED.valid_from,
            valid_until = EXCLUDED.valid_until,
            is_active = EXCLUDED.is_active,
            updated_at = now()
        RETURNING {_COLUMNS}
        """
        async with self.pool.acquire() as conn:
            try:
                row = await conn.fetchrow(
                    sql,
                    promo.code,
                    promo.description,
                    promo.type.value,
                    promo.value,
                    promo.minimum_amount,
                    promo.maximum_discount,
                    promo.usage_limit,
                    promo.used_count,
                    promo.valid_from,
                    promo.valid_until,
                    promo.is_active,
                )
            except asyncpg.exceptions.CheckViolationError as e:
                raise ValueError("Used count cannot exceed usage limit") from e

        return _row_to_promo(row)

    async def delete_promo(self, code: str, force: bool = False) -> None:
        code = normalize_code(code)
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                used = await conn.fetchval(
                    "SELECT used_count FROM promos WHERE code = $1 FOR UPDATE", code
                )
                if used is None:
                    raise PromoNotFound(code)
                if used > 0 and not force:
                    raise PromoInUse(code, used)
                await conn.execute("DELETE FROM promo_redemptions WHERE promo_code = $1", code)
                await conn.execute("DELETE FROM promos WHERE code = $1", code)

        if used > 0:
            log.warning("Promo %s deleted with used_count=%s (forced)", code, used)

    async def _redeem_once(self, code: str) -> RedeemResult:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                # проверка лимита и инкремент в одном UPDATE
                used = await conn.fetchval(
                    """
                    UPDATE promos
                       SET used_count = used_count + 1,
                           updated_at = now()
                     WHERE code = $1
                       AND (usage_limit IS NULL OR used_count < usage_limit)
                 RETURNING used_count
                    """,
                    code,
                )

                if used is None:
                    current = await conn.fetchval(
                        "SELECT used_count FROM promos WHERE code = $1", code
                    )
                    if current is None:
                        raise PromoNotFound(code)
                    return RedeemResult(outcome=RedeemOutcome.LIMIT_REACHED, used_count=current)

                redemption_id = uuid.uuid4().hex
                await conn.execute(
                    """
                    INSERT INTO promo_redemptions (id, promo_code, created_at)
                    VALUES ($1, $2, $3)
                    """,
                    redemption_id,
                    code,
                    datetime.now(timezone.utc),
                )

        return RedeemResult(
            outcome=RedeemOutcome.REDEEMED,
            redemption_id=redemption_id,
            used_count=used,
        )

    async def atomic_redeem(self, code: str) -> RedeemResult:
        code = normalize_code(code)

        for attempt in range(1, self.max_retries + 1):
            try:
                result = await self._redeem_once(code)
            except _RETRYABLE as e:
                log.info("Redeem %s: write conflict (%s), attempt %s/%s",
                         code, type(e).__name__, attempt, self.max_retries)
                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_delay * attempt)
                continue
            return RedeemResult(
                outcome=result.outcome,
                redemption_id=result.redemption_id,
                used_count=result.used_count,
                attempts=attempt,
            )

        log.warning("Redeem %s: busy after %s attempts", code, self.max_retries)
        return RedeemResult(outcome=RedeemOutcome.BUSY, attempts=self.max_retries)

    async def compensate_rollback(self, redemption_id: str) -> bool:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                # анти-дубликат: откатывает только тот, кто первым проставил rolled_back_at
                promo_code = await conn.fetchval(
                    """
                    UPDATE promo_redemptions
                       SET rolled_back_at = now()
                     WHERE id = $1
                       AND rolled_back_at IS NULL
                 RETURNING promo_code
                    """,
                    redemption_id,
                )
                if promo_code is None:
                    return False

                await conn.execute(
                    """
                    UPDATE promos
                       SET used_count = used_count - 1,
                           updated_at = now()
                     WHERE code = $1
                       AND used_count > 0
                    """,
                    promo_code,
                )

        return True
