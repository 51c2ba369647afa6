import asyncpg

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS promos (
    code             varchar(50) PRIMARY KEY,
    description      varchar(200),
    type             text NOT NULL CHECK (type IN ('percentage', 'fixed')),
    value            numeric(12, 2) NOT NULL CHECK (value >= 0),
    minimum_amount   numeric(12, 2) NOT NULL DEFAULT 0 CHECK (minimum_amount >= 0),
    maximum_discount numeric(12, 2) CHECK (maximum_discount >= 0),
    usage_limit      integer CHECK (usage_limit >= 1),
    used_count       integer NOT NULL DEFAULT 0 CHECK (used_count >= 0),
    valid_from       timestamptz NOT NULL,
    valid_until      timestamptz NOT NULL,
    is_active        boolean NOT NULL DEFAULT true,
    created_at       timestamptz NOT NULL DEFAULT now(),
    updated_at       timestamptz NOT NULL DEFAULT now(),
    CHECK (type <> 'percentage' OR value <= 100),
    CHECK (valid_from < valid_until),
    CHECK (usage_limit IS NULL OR used_count <= usage_limit)
);

CREATE INDEX IF NOT EXISTS promos_active_window_idx
    ON promos (is_active, valid_from, valid_until);

CREATE TABLE IF NOT EXISTS promo_redemptions (
    id             text PRIMARY KEY,
    promo_code     varchar(50) NOT NULL REFERENCES promos (code),
    created_at     timestamptz NOT NULL,
    rolled_back_at timestamptz
);

CREATE INDEX IF NOT EXISTS promo_redemptions_code_idx
    ON promo_redemptions (promo_code);

CREATE TABLE IF NOT EXISTS orders (
    order_number     text PRIMARY KEY,
    items            jsonb NOT NULL,
    promo_code       varchar(50),
    redemption_id    text,
    subtotal         numeric(12, 2) NOT NULL,
    discount         numeric(12, 2) NOT NULL,
    shipping         numeric(12, 2) NOT NULL,
    tax              numeric(12, 2) NOT NULL,
    total            numeric(12, 2) NOT NULL,
    shipping_address jsonb NOT NULL,
    status           text NOT NULL DEFAULT 'pending',
    payment_status   text NOT NULL DEFAULT 'pending',
    created_at       timestamptz NOT NULL DEFAULT now()
);
"""


async def ensure_schema(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute(SCHEMA_SQL)
