"""Хранилище FSM в Redis (redis.asyncio). История состояний и данные — JSON под двумя ключами. Чтение-изменение-запись идёт через WATCH/MULTI."""

import json
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError, WatchError

from ...exceptions import StorageError
from .base import BaseStorage, StorageKey


def default_key_builder(key: StorageKey, part: str, prefix: str = "fsm") -> str:
    """fsm:<bot>:<chat>:<user>[:<thread>][:<connection>]:<destiny>:<part>."""
    parts = [prefix, str(key.bot_id), str(key.chat_id), str(key.user_id)]
    if key.thread_id is not None:
        parts.append(str(key.thread_id))
    if key.business_connection_id:
        parts.append(key.business_connection_id)
    parts.extend((key.destiny, part))
    return ":".join(parts)


class RedisStorage(BaseStorage):
    """state_ttl/data_ttl — время жизни ключей в секундах, None — без срока."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        prefix: str = "fsm",
        state_ttl: Optional[int] = None,
        data_ttl: Optional[int] = None,
        key_builder: Callable[[StorageKey, str, str], str] = default_key_builder,
    ) -> None:
        self._redis = client
        self._prefix = prefix
        self._state_ttl = state_ttl
        self._data_ttl = data_ttl
        self._key_builder = key_builder

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisStorage":
        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    @property
    def client(self) -> redis.Redis:
        return self._redis

    def _key(self, key: StorageKey, part: str) -> str:
        return self._key_builder(key, part, self._prefix)

    @staticmethod
    def _dumps(value: Any, key: StorageKey) -> str:
        try:
            return json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError(f"cannot serialize FSM value: {e}", key=key) from e

    @staticmethod
    def _loads(raw: Any, key: StorageKey, default: Any) -> Any:
        if raw is None:
            return default
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            raise StorageError(f"cannot deserialize FSM value: {e}", key=key) from e

    async def _write(self, name: str, value: Any, ttl: Optional[int], key: StorageKey, pipe: Any) -> None:
        if value:
            pipe.set(name, self._dumps(value, key), ex=ttl)
        else:
            pipe.delete(name)

    async def _modify(
        self,
        key: StorageKey,
        part: str,
        ttl: Optional[int],
        default: Any,
        change: Callable[[Any], Awaitable[Any]],
    ) -> Any:
        """Оптимистичная транзакция: WATCH, чтение, MULTI, запись. При конкурентной записи — повтор."""
        name = self._key(key, part)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(name)
                        current = self._loads(await pipe.get(name), key, default)
                        updated = await change(current)
                        pipe.multi()
                        await self._write(name, updated, ttl, key, pipe)
                        await pipe.execute()
                        return updated
                    except WatchError:
                        logger.trace("FSM key {} changed concurrently, retrying", name)
                        continue
        except RedisError as e:
            raise StorageError(f"redis error: {e}", key=key) from e

    async def set_state(self, key: StorageKey, state: Optional[str] = None) -> None:
        async def change(states: List[str]) -> List[str]:
            return [] if state is None else [*states, state]

        await self._modify(key, "states", self._state_ttl, [], change)

    async def get_state(self, key: StorageKey) -> Optional[str]:
        states = await self.get_states(key)
        return states[-1] if states else None

    async def get_states(self, key: StorageKey) -> List[str]:
        try:
            raw = await self._redis.get(self._key(key, "states"))
        except RedisError as e:
            raise StorageError(f"redis error: {e}", key=key) from e
        return list(self._loads(raw, key, []))

    async def set_previous_state(self, key: StorageKey) -> Optional[str]:
        async def change(states: List[str]) -> List[str]:
            return states[:-1]

        states = await self._modify(key, "states", self._state_ttl, [], change)
        return states[-1] if states else None

    async def set_data(self, key: StorageKey, data: Mapping[str, Any]) -> None:
        name = self._key(key, "data")
        try:
            if data:
                await self._redis.set(name, self._dumps(dict(data), key), ex=self._data_ttl)
            else:
                await self._redis.delete(name)
        except RedisError as e:
            raise StorageError(f"redis error: {e}", key=key) from e

    async def get_data(self, key: StorageKey) -> Dict[str, Any]:
        try:
            raw = await self._redis.get(self._key(key, "data"))
        except RedisError as e:
            raise StorageError(f"redis error: {e}", key=key) from e
        return dict(self._loads(raw, key, {}))

    async def update_data(self, key: StorageKey, patch: Mapping[str, Any]) -> Dict[str, Any]:
        async def change(data: Dict[str, Any]) -> Dict[str, Any]:
            return {**data, **patch}

        return dict(await self._modify(key, "data", self._data_ttl, {}, change))

    async def clear(self, key: StorageKey) -> None:
        try:
            await self._redis.delete(self._key(key, "states"), self._key(key, "data"))
        except RedisError as e:
            raise StorageError(f"redis error: {e}", key=key) from e

    async def close(self) -> None:
        await self._redis.aclose()
