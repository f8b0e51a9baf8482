"""
Конфигурация из переменных окружения (.env подхватывается через python-dotenv).

Использование:
    from tg_dispatch.config import load_settings
    settings = load_settings()
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .fsm.storage.base import BaseStorage
from .fsm.storage.memory import MemoryStorage
from .fsm.strategy import KeyStrategy


@dataclass(frozen=True)
class Settings:
    bot_token: Optional[str]
    api_url: str = "https://api.telegram.org"
    polling_timeout: int = 30
    tasks_concurrency_limit: int = 128
    fsm_strategy: KeyStrategy = KeyStrategy.USER_IN_CHAT
    redis_url: Optional[str] = None

    def create_storage(self) -> BaseStorage:
        """REDIS_URL задан — RedisStorage (нужен extra redis), иначе память."""
        if self.redis_url:
            from .fsm.storage.redis import RedisStorage

            return RedisStorage.from_url(self.redis_url)
        return MemoryStorage()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Читает .env (или env_file) и окружение. Уже заданные переменные окружения .env не перетирает."""
    load_dotenv(env_file)
    return Settings(
        bot_token=os.getenv("BOT_TOKEN"),
        api_url=os.getenv("TELEGRAM_API_URL") or "https://api.telegram.org",
        polling_timeout=_int_env("POLLING_TIMEOUT", 30),
        tasks_concurrency_limit=_int_env("TASKS_CONCURRENCY_LIMIT", 128),
        fsm_strategy=KeyStrategy(os.getenv("FSM_STRATEGY") or KeyStrategy.USER_IN_CHAT.value),
        redis_url=os.getenv("REDIS_URL") or None,
    )
