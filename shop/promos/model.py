from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from shop.utils.money import ZERO, has_cents_only, to_decimal

CODE_MAX_LENGTH = 50


class PromoType(str, Enum):
    PERCENTAGE = "percentage"  # value = 0..100 %
    FIXED = "fixed"            # value = сумма


class PromoStatus(str, Enum):
    INACTIVE = "inactive"
    UPCOMING = "upcoming"
    EXPIRED = "expired"
    LIMIT_REACHED = "limit-reached"
    ACTIVE = "active"


class RedeemOutcome(str, Enum):
    REDEEMED = "redeemed"
    LIMIT_REACHED = "limit-reached"
    BUSY = "busy"


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _utc(dt: datetime) -> datetime:
    # naive datetime считаем UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class PromoCode:
    code: str
    type: PromoType
    value: Decimal
    valid_from: datetime
    valid_until: datetime
    minimum_amount: Decimal = ZERO
    maximum_discount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    used_count: int = 0
    is_active: bool = True
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        # frozen → через object.__setattr__
        object.__setattr__(self, "code", normalize_code(self.code))
        object.__setattr__(self, "type", PromoType(self.type))
        object.__setattr__(self, "value", to_decimal(self.value))
        object.__setattr__(self, "minimum_amount", to_decimal(self.minimum_amount or 0))
        if self.maximum_discount is not None:
            object.__setattr__(self, "maximum_discount", to_decimal(self.maximum_discount))
        object.__setattr__(self, "valid_from", _utc(self.valid_from))
        object.__setattr__(self, "valid_until", _utc(self.valid_until))

    @property
    def remaining_usage(self) -> Optional[int]:
        if self.usage_limit is None:
            return None
        return max(0, self.usage_limit - self.used_count)

    def with_used_count(self, used_count: int) -> "PromoCode":
        return replace(self, used_count=used_count)


def validate_promo(promo: PromoCode) -> None:
    """
    Проверка записи перед сохранением (админка).
    Бросает ValueError с первым найденным нарушением.
    """
    if not promo.code:
        raise ValueError("Code is required")
    if len(promo.code) > CODE_MAX_LENGTH:
        raise ValueError("Code too long")
    if promo.value < 0:
        raise ValueError("Value must be non-negative")
    if promo.type == PromoType.PERCENTAGE and promo.value > 100:
        raise ValueError("Percentage value cannot exceed 100")
    if promo.minimum_amount < 0:
        raise ValueError("Minimum amount must be non-negative")
    if promo.maximum_discount is not None and promo.maximum_discount < 0:
        raise ValueError("Maximum discount must be non-negative")
    if promo.type == PromoType.FIXED and not has_cents_only(promo.value):
        raise ValueError("Value must have at most 2 decimal places")
    if not has_cents_only(promo.minimum_amount):
        raise ValueError("Minimum amount must have at most 2 decimal places")
    if promo.maximum_discount is not None and not has_cents_only(promo.maximum_discount):
        raise ValueError("Maximum discount must have at most 2 decimal places")
    if promo.usage_limit is not None and promo.usage_limit < 1:
        raise ValueError("Usage limit must be at least 1")
    if promo.used_count < 0:
        raise ValueError("Used count cannot be negative")
    if promo.usage_limit is not None and promo.used_count > promo.usage_limit:
        raise ValueError("Used count cannot exceed usage limit")
    if promo.valid_from >= promo.valid_until:
        raise ValueError("Valid from date must be before valid until date")


@dataclass(frozen=True)
class PromoEvaluation:
    status: PromoStatus
    eligible: bool
    discount_amount: Decimal = ZERO
    reason: Optional[str] = None


@dataclass(frozen=True)
class PromoEstimate:
    code: str
    type: PromoType
    value: Decimal
    discount: Decimal
    minimum_amount: Decimal
    maximum_discount: Optional[Decimal] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class RedeemResult:
    outcome: RedeemOutcome
    redemption_id: Optional[str] = None
    used_count: Optional[int] = None
    attempts: int = field(default=1, compare=False)

    @property
    def redeemed(self) -> bool:
        return self.outcome == RedeemOutcome.REDEEMED
