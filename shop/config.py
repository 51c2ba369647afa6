from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from dotenv import load_dotenv
import os

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent


def _str_to_bool(v: str | None, default: bool = False) -> bool:
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


# === Режим приложения ===
# - APP_ENV=prod  → прод (PostgreSQL)
# - APP_ENV=test  → тест (JSON-файлы в DATA_DIR)
APP_ENV = (os.getenv("APP_ENV") or "prod").strip().lower()
IS_PROD = APP_ENV == "prod"
IS_TEST = not IS_PROD

NOTIFICATIONS_ENABLED = _str_to_bool(os.getenv("ENABLE_NOTIFICATIONS"), default=IS_PROD)


def _env_int(name: str, *, required: bool = False, default: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        if required:
            raise RuntimeError(f"{name} is not set")
        return default
    try:
        return int(raw)
    except Exception as e:
        if required:
            raise RuntimeError(f"{name} must be an integer") from e
        return default


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return Decimal(default)
    try:
        value = Decimal(raw.strip())
    except InvalidOperation as e:
        raise RuntimeError(f"{name} must be a decimal number") from e
    if value < 0:
        raise RuntimeError(f"{name} must be non-negative")
    return value


MANAGER_1_ID = _env_int("MANAGER_1_ID")
MANAGER_2_ID = _env_int("MANAGER_2_ID")

MANAGERS = [x for x in (MANAGER_1_ID, MANAGER_2_ID) if x]


@dataclass
class Config:
    pg_host: str | None = None
    pg_port: int = 5432
    pg_db: str | None = None
    pg_user: str | None = None
    pg_pass: str | None = None
    pg_sslmode: str = "disable"
    pg_pool_min: int = 1
    pg_pool_max: int = 10
    pg_command_timeout: int = 30
    data_dir: Path = field(default_factory=lambda: BASE_DIR / "data")
    shipping_fee: Decimal = Decimal("10.00")
    free_shipping_threshold: Decimal = Decimal("50.00")
    tax_rate: Decimal = Decimal("0.08")
    redeem_max_retries: int = 3
    total_tolerance: Decimal = Decimal("0.01")
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    bot_token: str | None = None


def load_config() -> Config:
    pg_host = os.getenv("PG_HOST")
    pg_db = os.getenv("PG_DB")
    pg_user = os.getenv("PG_USER")

    if IS_PROD:
        if not pg_host:
            raise RuntimeError("PG_HOST is not set (APP_ENV=prod)")
        if not pg_db:
            raise RuntimeError("PG_DB is not set (APP_ENV=prod)")
        if not pg_user:
            raise RuntimeError("PG_USER is not set (APP_ENV=prod)")

    bot_token = os.getenv("BOT_TOKEN") or None
    if NOTIFICATIONS_ENABLED and bot_token and not MANAGERS:
        raise RuntimeError("MANAGER_1_ID is not set (notifications are enabled)")

    retries = _env_int("REDEEM_MAX_RETRIES", default=3)
    if retries < 1:
        raise RuntimeError("REDEEM_MAX_RETRIES must be at least 1")

    pool_min = _env_int("PG_POOL_MIN", default=1)
    pool_max = _env_int("PG_POOL_MAX", default=10)
    if pool_min < 1 or pool_max < pool_min:
        raise RuntimeError("PG_POOL_MIN must be at least 1 and not above PG_POOL_MAX")

    data_dir = os.getenv("DATA_DIR")

    return Config(
        pg_host=pg_host,
        pg_port=_env_int("PG_PORT", default=5432),
        pg_db=pg_db,
        pg_user=pg_user,
        pg_pass=os.getenv("PG_PASS"),
        pg_sslmode=os.getenv("PG_SSLMODE", "disable"),
        pg_pool_min=pool_min,
        pg_pool_max=pool_max,
        pg_command_timeout=_env_int("PG_COMMAND_TIMEOUT", default=30),
        data_dir=Path(data_dir) if data_dir else BASE_DIR / "data",
        shipping_fee=_env_decimal("SHIPPING_FEE", "10.00"),
        free_shipping_threshold=_env_decimal("FREE_SHIPPING_THRESHOLD", "50.00"),
        tax_rate=_env_decimal("TAX_RATE", "0.08"),
        redeem_max_retries=retries,
        total_tolerance=_env_decimal("TOTAL_TOLERANCE", "0.01"),
        api_host=os.getenv("API_HOST", "0.0.0.0"),
        api_port=_env_int("API_PORT", default=8080),
        bot_token=bot_token if NOTIFICATIONS_ENABLED else None,
    )
