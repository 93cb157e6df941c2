# config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

STORE_BACKENDS = ("memory", "mysql")

# kept in sync with services.notify_service.ALL_EVENTS
ANNOUNCEABLE_EVENTS = (
    "tournament-created",
    "match-updated",
    "bracket-progression",
    "tournament-completed",
    "tournament-error",
)


def _load_env_file() -> None:
    """
    Load .env from the project root (same folder as this config.py).
    Variables already set in the environment win.
    """
    dotenv_path = Path(__file__).resolve().parent / ".env"
    if dotenv_path.exists():
        load_dotenv(dotenv_path=dotenv_path, override=False)


@dataclass(frozen=True)
class MySqlConfig:
    host: str = "127.0.0.1"
    port: int = 3306
    user: str = "root"
    password: str = ""
    database: str = "brackets"
    minsize: int = 1
    maxsize: int = 5
    connect_timeout: int = 10


@dataclass(frozen=True)
class BotConfig:
    token: str | None
    dev_guild_id: int | None
    default_announce_channel_id: int | None
    announce_events: tuple[str, ...]
    command_prefix: str
    log_level: str
    store_backend: str
    default_seeding: str
    mysql: MySqlConfig


def _getenv(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    if v is None:
        return default
    v = v.strip()
    return v if v else default


def _int(name: str, default: int | None = None) -> int | None:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from e


def _choice(name: str, default: str, allowed: tuple[str, ...]) -> str:
    v = (_getenv(name, default) or default).lower()
    if v not in allowed:
        raise ValueError(f"{name} must be one of {', '.join(allowed)}, got: {v!r}")
    return v


def _events(name: str) -> tuple[str, ...]:
    raw = _getenv(name)
    if raw is None:
        return ANNOUNCEABLE_EVENTS
    picked = tuple(e.strip().lower() for e in raw.split(",") if e.strip())
    unknown = [e for e in picked if e not in ANNOUNCEABLE_EVENTS]
    if unknown:
        raise ValueError(f"{name} has unknown events {unknown}; known: {', '.join(ANNOUNCEABLE_EVENTS)}")
    return picked


def _mysql() -> MySqlConfig:
    d = MySqlConfig()
    cfg = MySqlConfig(
        host=_getenv("DB_HOST", d.host) or d.host,
        port=_int("DB_PORT", d.port),
        user=_getenv("DB_USER", d.user) or d.user,
        password=_getenv("DB_PASSWORD", d.password) or d.password,
        database=_getenv("DB_NAME", d.database) or d.database,
        minsize=_int("DB_POOL_MIN", d.minsize),
        maxsize=_int("DB_POOL_MAX", d.maxsize),
        connect_timeout=_int("DB_CONNECT_TIMEOUT", d.connect_timeout),
    )
    if cfg.minsize < 1:
        raise ValueError("DB_POOL_MIN must be >= 1")
    if cfg.maxsize < cfg.minsize:
        raise ValueError("DB_POOL_MAX must be >= DB_POOL_MIN")
    return cfg


def load_config(*, env_file: bool = True) -> BotConfig:
    """
    Read the bot configuration from the environment.

    DISCORD_TOKEN is optional here so tools and tests can load the config;
    main.py refuses to start the bot without it.
    """
    if env_file:
        _load_env_file()

    return BotConfig(
        token=_getenv("DISCORD_TOKEN"),
        dev_guild_id=_int("DEV_GUILD_ID"),
        default_announce_channel_id=_int("ANNOUNCE_CHANNEL_ID"),
        announce_events=_events("ANNOUNCE_EVENTS"),
        command_prefix=_getenv("COMMAND_PREFIX", "!") or "!",
        log_level=(_getenv("LOG_LEVEL", "INFO") or "INFO").upper(),
        store_backend=_choice("STORE_BACKEND", "memory", STORE_BACKENDS),
        default_seeding=(_getenv("DEFAULT_SEEDING", "natural") or "natural").lower(),
        mysql=_mysql(),
    )
