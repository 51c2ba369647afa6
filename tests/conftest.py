"""Pytest configuration for checkout tests."""

import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from shop.checkout import CheckoutCoordinator
from shop.orders.storage import JsonOrderStorage
from shop.pricing.policies import flat_shipping, flat_tax
from shop.promos.model import PromoCode, PromoType
from shop.promos.storage import JsonPromoStorage

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def make_promo(**overrides) -> PromoCode:
    data = dict(
        code="WELCOME10",
        type=PromoType.PERCENTAGE,
        value=Decimal("10"),
        valid_from=NOW - timedelta(days=7),
        valid_until=NOW + timedelta(days=7),
    )
    data.update(overrides)
    return PromoCode(**data)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def promo_storage(tmp_path):
    return JsonPromoStorage(
        promos_path=str(tmp_path / "promos.json"),
        redemptions_path=str(tmp_path / "promo_redemptions.json"),
    )


@pytest.fixture
def order_storage(tmp_path):
    return JsonOrderStorage(str(tmp_path / "orders.json"))


@pytest.fixture
def shipping_policy():
    # 10.00 ниже 50.00, от 50.00 бесплатно
    return flat_shipping(Decimal("10.00"), Decimal("50.00"))


@pytest.fixture
def tax_policy():
    return flat_tax(Decimal("0.08"))


@pytest.fixture
def coordinator(promo_storage, order_storage, shipping_policy, tax_policy):
    return CheckoutCoordinator(
        promos=promo_storage,
        orders=order_storage,
        shipping_policy=shipping_policy,
        tax_policy=tax_policy,
        clock=lambda: NOW,
    )


# ---------------------------------------------------------------------------
# PostgreSQL tests run only against a real server (TEST_DATABASE_URL)
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

_POSTGRES_REQUIRED_FILES = {
    "test_pg_storage.py",
}


def pytest_collection_modifyitems(items, config):
    """Auto-skip Postgres-dependent tests when TEST_DATABASE_URL is not set."""
    if TEST_DATABASE_URL:
        return

    skip_marker = pytest.mark.skip(reason="TEST_DATABASE_URL is not set")
    for item in items:
        if getattr(item.fspath, "basename", "") in _POSTGRES_REQUIRED_FILES:
            item.add_marker(skip_marker)
