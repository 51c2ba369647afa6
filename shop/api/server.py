from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from typing import Any, Callable, Optional

from aiohttp import web

from shop.checkout.coordinator import TOTAL_FIELDS, CheckoutCoordinator, CheckoutRequest
from shop.errors import InvalidOrderRequest, InvalidRequest, ShopError
from shop.orders.model import Order
from shop.pricing.engine import CartLineItem
from shop.promos.model import PromoCode
from shop.promos.service import PromoService, utc_now
from shop.promos.validator import derive_status
from shop.utils.logger import get_logger
from shop.utils.money import to_decimal, to_money
from shop.utils.notify import notify_managers, order_text

log = get_logger("api")


def _money(value: Optional[Decimal]) -> Optional[float]:
    return float(to_money(value)) if value is not None else None


def _number(value: Any, name: str, error=InvalidOrderRequest) -> Decimal:
    if value is None or isinstance(value, bool):
        raise error(f"{name} must be a number")
    try:
        number = to_decimal(value)
    except (TypeError, ValueError) as e:
        raise error(f"{name} must be a number") from e
    if not number.is_finite() or number < 0:
        raise error(f"{name} must be a non-negative number")
    return number


def _parse_item(raw: Any, idx: int) -> CartLineItem:
    if not isinstance(raw, dict):
        raise InvalidOrderRequest(f"items[{idx}] must be an object")

    # старые клиенты шлют price вместо unitPrice
    price = raw.get("unitPrice", raw.get("price"))
    quantity = raw.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidOrderRequest(f"items[{idx}].quantity must be an integer")

    try:
        return CartLineItem(
            product_id=str(raw.get("productId") or ""),
            variant_id=raw.get("variantId"),
            unit_price=_number(price, f"items[{idx}].unitPrice"),
            quantity=quantity,
        )
    except ValueError as e:
        raise InvalidOrderRequest(f"items[{idx}]: {e}") from e


def parse_checkout_request(data: Any) -> CheckoutRequest:
    if not isinstance(data, dict):
        raise InvalidOrderRequest("Request body must be a JSON object")

    items = data.get("items")
    if not isinstance(items, list) or not items:
        raise InvalidOrderRequest("Order items are required")

    address = data.get("shippingAddress")
    if not isinstance(address, dict) or not address:
        raise InvalidOrderRequest("Shipping address is required")

    promo_code = data.get("promoCode")
    if promo_code is not None and not isinstance(promo_code, str):
        raise InvalidOrderRequest("promoCode must be a string")

    client_totals = {
        name: _number(data[name], name)
        for name in TOTAL_FIELDS
        if data.get(name) is not None
    }

    return CheckoutRequest(
        items=[_parse_item(raw, idx) for idx, raw in enumerate(items)],
        shipping_address=address,
        promo_code=promo_code or None,
        client_totals=client_totals,
    )


def promo_to_json(promo: PromoCode, status: str) -> dict:
    return {
        "code": promo.code,
        "description": promo.description,
        "type": promo.type.value,
        "value": float(promo.value),
        "minimumAmount": _money(promo.minimum_amount),
        "maximumDiscount": _money(promo.maximum_discount),
        "usageLimit": promo.usage_limit,
        "usedCount": promo.used_count,
        "remainingUsage": promo.remaining_usage,
        "validFrom": promo.valid_from.isoformat(),
        "validUntil": promo.valid_until.isoformat(),
        "isActive": promo.is_active,
        "status": status,
        "createdAt": promo.created_at.isoformat() if promo.created_at else None,
        "updatedAt": promo.updated_at.isoformat() if promo.updated_at else None,
    }


def order_to_json(order: Order) -> dict:
    t = order.totals
    return {
        "orderNumber": order.order_number,
        "subtotal": _money(t.subtotal),
        "discount": _money(t.discount),
        "shipping": _money(t.shipping),
        "tax": _money(t.tax),
        "total": _money(t.total),
        "promoCode": order.promo_code,
        "status": order.status,
        "paymentStatus": order.payment_status,
        "createdAt": order.created_at.isoformat(),
    }


async def _read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidRequest("Request body must be valid JSON") from e


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ShopError as e:
        return web.json_response({"success": False, "error": e.to_dict()}, status=e.http_status)
    except Exception:
        log.exception("Unhandled error on %s %s", request.method, request.path)
        return web.json_response(
            {
                "success": False,
                "error": {"code": "internal_error", "message": "Internal server error", "retryable": False},
            },
            status=500,
        )


async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def get_promo(request: web.Request) -> web.Response:
    service: PromoService = request.app["promo_service"]
    promo = await service.get(request.match_info["code"])
    status = derive_status(promo, request.app["clock"]())
    return web.json_response({"success": True, "data": promo_to_json(promo, status.value)})


async def validate_promo(request: web.Request) -> web.Response:
    data = await _read_json(request)
    if not isinstance(data, dict) or not data.get("code"):
        raise InvalidRequest("Promo code is required")

    subtotal = _number(data.get("subtotal", 0), "subtotal", error=InvalidRequest)

    service: PromoService = request.app["promo_service"]
    est = await service.estimate(str(data["code"]), subtotal, now=request.app["clock"]())

    return web.json_response({
        "success": True,
        "data": {
            "code": est.code,
            "description": est.description,
            "type": est.type.value,
            "value": float(est.value),
            "discount": _money(est.discount),
            "minimumAmount": _money(est.minimum_amount),
            "maximumDiscount": _money(est.maximum_discount),
        },
    })


def _spawn_notification(app: web.Application, order: Order) -> None:
    bot = app.get("bot")
    if bot is None:
        return

    task = asyncio.create_task(notify_managers(bot, order_text(order), app["managers"]))
    tasks: set = app["background_tasks"]
    tasks.add(task)
    task.add_done_callback(tasks.discard)


async def create_order(request: web.Request) -> web.Response:
    checkout_request = parse_checkout_request(await _read_json(request))

    coordinator: CheckoutCoordinator = request.app["coordinator"]
    order = await coordinator.checkout(checkout_request, finalize=request.app.get("finalize"))

    _spawn_notification(request.app, order)

    return web.json_response(
        {"success": True, "message": "Order created successfully", "order": order_to_json(order)},
        status=201,
    )


async def cancel_order(request: web.Request) -> web.Response:
    coordinator: CheckoutCoordinator = request.app["coordinator"]
    cancelled = await coordinator.abort(request.match_info["order_number"])
    if not cancelled:
        raise web.HTTPNotFound(
            text=json.dumps({"success": False, "error": {"code": "order_not_cancellable"}}),
            content_type="application/json",
        )
    return web.json_response({"success": True})


async def _close_background(app: web.Application) -> None:
    tasks = list(app["background_tasks"])
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
    bot = app.get("bot")
    if bot is not None:
        await bot.session.close()


def create_app(
    promo_service: PromoService,
    coordinator: CheckoutCoordinator,
    bot=None,
    managers=(),
    clock: Callable = utc_now,
    finalize=None,
) -> web.Application:
    app = web.Application(middlewares=[error_middleware])
    app["promo_service"] = promo_service
    app["coordinator"] = coordinator
    app["bot"] = bot
    app["managers"] = list(managers)
    app["clock"] = clock
    app["finalize"] = finalize
    app["background_tasks"] = set()

    app.router.add_get("/api/health", health)
    app.router.add_get("/api/promo-codes/{code}", get_promo)
    app.router.add_post("/api/promo-codes/validate", validate_promo)
    app.router.add_post("/api/orders", create_order)
    app.router.add_post("/api/orders/{order_number}/cancel", cancel_order)

    app.on_cleanup.append(_close_background)
    return app
