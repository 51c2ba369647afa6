import asyncio

from aiogram import Bot
from aiohttp import web

from shop.api.server import create_app
from shop.checkout import CheckoutCoordinator
from shop.config import APP_ENV, IS_PROD, MANAGERS, load_config
from shop.db.pool import PgConfig, create_pool
from shop.db.schema import ensure_schema
from shop.orders import create_order_storage
from shop.pricing.policies import policies_from_config
from shop.promos import PromoService, create_promo_storage
from shop.utils.logger import get_logger

log = get_logger("main")


async def main():
    cfg = load_config()

    pool = None

    # --- PostgreSQL pool (только в PROD) ---
    if IS_PROD:
        pool = await create_pool(PgConfig.from_config(cfg))
        await pool.execute("select 1;")
        await ensure_schema(pool)
        log.info("PG: OK")
    else:
        log.info("APP_ENV=%s → DB отключена (работаем на JSON в %s)", APP_ENV, cfg.data_dir)

    promo_storage = create_promo_storage(pool, data_dir=cfg.data_dir, max_retries=cfg.redeem_max_retries)
    order_storage = create_order_storage(pool, data_dir=cfg.data_dir)
    shipping_policy, tax_policy = policies_from_config(cfg)

    coordinator = CheckoutCoordinator(
        promos=promo_storage,
        orders=order_storage,
        shipping_policy=shipping_policy,
        tax_policy=tax_policy,
        tolerance=cfg.total_tolerance,
    )

    bot = Bot(token=cfg.bot_token) if cfg.bot_token else None

    app = create_app(
        promo_service=PromoService(promo_storage),
        coordinator=coordinator,
        bot=bot,
        managers=MANAGERS,
    )

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=cfg.api_host, port=cfg.api_port)

    try:
        await site.start()
        log.info("API listening on %s:%s", cfg.api_host, cfg.api_port)
        while True:
            await asyncio.sleep(3600)
    finally:
        await runner.cleanup()
        if pool is not None:
            await pool.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
