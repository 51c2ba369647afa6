from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict


class ShopError(Exception):
    http_status = 500
    code = "internal_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        data.update(self.details())
        return data


class PromoError(ShopError):
    http_status = 400
    code = "promo_error"

    def __init__(self, promo_code: str, message: str):
        super().__init__(message)
        self.promo_code = promo_code

    def details(self) -> Dict[str, Any]:
        return {"promoCode": self.promo_code}


class PromoNotFound(PromoError):
    http_status = 404
    code = "promo_not_found"

    def __init__(self, promo_code: str):
        super().__init__(promo_code, "Invalid promo code")


_NOT_ACTIVE_MESSAGES = {
    "inactive": "Promo code is inactive",
    "upcoming": "Promo code is not yet active",
    "expired": "Promo code has expired",
    "limit-reached": "Promo code usage limit reached",
}


class PromoNotActive(PromoError):
    code = "promo_not_active"

    def __init__(self, promo_code: str, reason: str):
        super().__init__(promo_code, _NOT_ACTIVE_MESSAGES.get(reason, "Promo code is not valid"))
        self.reason = reason

    def details(self) -> Dict[str, Any]:
        return {**super().details(), "reason": self.reason}


class PromoBelowMinimum(PromoError):
    code = "promo_below_minimum"

    def __init__(self, promo_code: str, required: Decimal, actual: Decimal):
        super().__init__(promo_code, f"Minimum order amount of ${required:.2f} required")
        self.required = required
        self.actual = actual

    def details(self) -> Dict[str, Any]:
        return {
            **super().details(),
            "reason": "below minimum",
            "required": float(self.required),
            "actual": float(self.actual),
        }


class PromoRedeemConflict(PromoError):
    http_status = 503
    code = "promo_redeem_conflict"
    retryable = True

    def __init__(self, promo_code: str):
        super().__init__(promo_code, "Promo code is busy, please retry")


class PromoInvalidAtCheckout(PromoError):
    http_status = 409
    code = "promo_invalid_at_checkout"

    def __init__(self, promo_code: str, reason: str):
        super().__init__(
            promo_code,
            f"Promo code {promo_code} can no longer be applied ({reason}); "
            "remove it or use a different code",
        )
        self.reason = reason

    def details(self) -> Dict[str, Any]:
        return {**super().details(), "reason": self.reason}


class PromoInUse(PromoError):
    http_status = 409
    code = "promo_in_use"

    def __init__(self, promo_code: str, used_count: int):
        super().__init__(promo_code, f"Promo code {promo_code} has been used {used_count} time(s)")
        self.used_count = used_count

    def details(self) -> Dict[str, Any]:
        return {**super().details(), "usedCount": self.used_count}


class OrderTotalMismatch(ShopError):
    http_status = 422
    code = "order_total_mismatch"

    def __init__(self, field: str, client: Decimal, server: Decimal):
        super().__init__(f"Submitted {field} {client:.2f} does not match computed {server:.2f}")
        self.field = field
        self.client = client
        self.server = server

    def details(self) -> Dict[str, Any]:
        return {"field": self.field, "client": float(self.client), "server": float(self.server)}


class InvalidRequest(ShopError):
    http_status = 400
    code = "invalid_request"


class InvalidOrderRequest(InvalidRequest):
    code = "invalid_order"
