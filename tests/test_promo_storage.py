import asyncio
from decimal import Decimal

import pytest

from shop.errors import PromoInUse, PromoNotFound
from shop.promos.model import PromoType, RedeemOutcome

from conftest import make_promo


async def test_get_is_case_insensitive(promo_storage):
    await promo_storage.save_promo(make_promo(code="welcome10"))

    promo = await promo_storage.get_promo("  Welcome10 ")
    assert promo is not None
    assert promo.code == "WELCOME10"
    assert promo.type == PromoType.PERCENTAGE
    assert promo.value == Decimal("10")
    assert promo.created_at is not None


async def test_get_missing(promo_storage):
    assert await promo_storage.get_promo("NOPE") is None


async def test_save_rejects_invalid_record(promo_storage):
    with pytest.raises(ValueError):
        await promo_storage.save_promo(make_promo(value=Decimal("150")))
    assert await promo_storage.get_promo("WELCOME10") is None


async def test_update_keeps_used_count(promo_storage):
    await promo_storage.save_promo(make_promo(usage_limit=10))
    await promo_storage.atomic_redeem("WELCOME10")
    await promo_storage.atomic_redeem("WELCOME10")

    # админ правит запись со старым снимком used_count=0
    await promo_storage.save_promo(make_promo(usage_limit=10, value=Decimal("15")))

    promo = await promo_storage.get_promo("WELCOME10")
    assert promo.value == Decimal("15")
    assert promo.used_count == 2


async def test_update_cannot_lower_limit_below_used(promo_storage):
    await promo_storage.save_promo(make_promo(usage_limit=10))
    for _ in range(3):
        await promo_storage.atomic_redeem("WELCOME10")

    with pytest.raises(ValueError):
        await promo_storage.save_promo(make_promo(usage_limit=2))


async def test_redeem_unknown_code(promo_storage):
    with pytest.raises(PromoNotFound):
        await promo_storage.atomic_redeem("GHOST")


@pytest.mark.parametrize("limit, attempts", [(1, 2), (5, 20), (3, 3), (10, 11)])
async def test_cap_invariant_under_concurrency(promo_storage, limit, attempts):
    await promo_storage.save_promo(make_promo(usage_limit=limit))

    results = await asyncio.gather(*(promo_storage.atomic_redeem("WELCOME10") for _ in range(attempts)))

    redeemed = [r for r in results if r.outcome == RedeemOutcome.REDEEMED]
    limited = [r for r in results if r.outcome == RedeemOutcome.LIMIT_REACHED]
    assert len(redeemed) == limit
    assert len(limited) == attempts - limit
    assert len({r.redemption_id for r in redeemed}) == limit

    promo = await promo_storage.get_promo("WELCOME10")
    assert promo.used_count == limit


async def test_unlimited_promo(promo_storage):
    await promo_storage.save_promo(make_promo())

    results = await asyncio.gather(*(promo_storage.atomic_redeem("WELCOME10") for _ in range(12)))

    assert all(r.redeemed for r in results)
    assert (await promo_storage.get_promo("WELCOME10")).used_count == 12


async def test_rollback_runs_once(promo_storage):
    await promo_storage.save_promo(make_promo(usage_limit=1))
    result = await promo_storage.atomic_redeem("WELCOME10")
    assert (await promo_storage.get_promo("WELCOME10")).used_count == 1

    first, second = await asyncio.gather(
        promo_storage.compensate_rollback(result.redemption_id),
        promo_storage.compensate_rollback(result.redemption_id),
    )

    assert sorted([first, second]) == [False, True]
    assert (await promo_storage.get_promo("WELCOME10")).used_count == 0

    # слот снова доступен
    again = await promo_storage.atomic_redeem("WELCOME10")
    assert again.redeemed


async def test_rollback_unknown_redemption(promo_storage):
    await promo_storage.save_promo(make_promo())
    assert await promo_storage.compensate_rollback("missing") is False


async def test_delete_guard(promo_storage):
    await promo_storage.save_promo(make_promo())
    await promo_storage.atomic_redeem("WELCOME10")

    with pytest.raises(PromoInUse) as exc:
        await promo_storage.delete_promo("welcome10")
    assert exc.value.used_count == 1

    await promo_storage.delete_promo("welcome10", force=True)
    assert await promo_storage.get_promo("WELCOME10") is None


async def test_delete_unused(promo_storage):
    await promo_storage.save_promo(make_promo(code="SPRING"))
    await promo_storage.delete_promo("spring")
    assert await promo_storage.get_promo("SPRING") is None

    with pytest.raises(PromoNotFound):
        await promo_storage.delete_promo("spring")


async def test_forced_delete_drops_old_redemptions(promo_storage):
    await promo_storage.save_promo(make_promo(usage_limit=5))
    old = await promo_storage.atomic_redeem("WELCOME10")

    await promo_storage.delete_promo("WELCOME10", force=True)
    await promo_storage.save_promo(make_promo(usage_limit=5))
    fresh = await promo_storage.atomic_redeem("WELCOME10")
    assert fresh.used_count == 1

    # повторный abort старого заказа не трогает новую запись
    assert await promo_storage.compensate_rollback(old.redemption_id) is False
    assert (await promo_storage.get_promo("WELCOME10")).used_count == 1

    assert await promo_storage.compensate_rollback(fresh.redemption_id) is True
    assert (await promo_storage.get_promo("WELCOME10")).used_count == 0


async def test_delete_keeps_other_codes_redemptions(promo_storage):
    await promo_storage.save_promo(make_promo(code="SPRING"))
    await promo_storage.save_promo(make_promo(code="SUMMER"))
    await promo_storage.atomic_redeem("SPRING")
    summer = await promo_storage.atomic_redeem("SUMMER")

    await promo_storage.delete_promo("SPRING", force=True)

    assert await promo_storage.compensate_rollback(summer.redemption_id) is True
    assert (await promo_storage.get_promo("SUMMER")).used_count == 0


async def test_save_rejects_sub_cent_cap(promo_storage):
    with pytest.raises(ValueError, match="2 decimal places"):
        await promo_storage.save_promo(make_promo(value=50, maximum_discount=Decimal("5.555")))
    assert await promo_storage.get_promo("WELCOME10") is None
