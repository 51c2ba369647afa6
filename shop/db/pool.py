from dataclasses import dataclass

import asyncpg


@dataclass(frozen=True)
class PgConfig:
    host: str
    port: int
    database: str
    user: str
    password: str | None
    sslmode: str = "disable"
    min_size: int = 1
    max_size: int = 10
    command_timeout: float = 30

    @classmethod
    def from_config(cls, cfg) -> "PgConfig":
        return cls(
            host=cfg.pg_host,
            port=cfg.pg_port,
            database=cfg.pg_db,
            user=cfg.pg_user,
            password=cfg.pg_pass,
            sslmode=cfg.pg_sslmode,
            min_size=cfg.pg_pool_min,
            max_size=cfg.pg_pool_max,
            command_timeout=cfg.pg_command_timeout,
        )


def _ssl_arg(sslmode: str):
    return None if sslmode == "disable" else True


async def create_pool(cfg: PgConfig) -> asyncpg.Pool:
    # каждая попытка погашения держит соединение на одну транзакцию,
    # max_size ограничивает число одновременных погашений
    return await asyncpg.create_pool(
        host=cfg.host,
        port=cfg.port,
        database=cfg.database,
        user=cfg.user,
        password=cfg.password,
        ssl=_ssl_arg(cfg.sslmode),
        min_size=cfg.min_size,
        max_size=cfg.max_size,
        command_timeout=cfg.command_timeout,
    )
