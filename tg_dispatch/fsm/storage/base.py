"""Контракт хранилища FSM. Ядро работает только через него: память, Redis или что угодно своё."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

DEFAULT_DESTINY = "default"


@dataclass(frozen=True)
class StorageKey:
    """Ключ разговора. destiny — пространство имён, если у одного пользователя несколько независимых FSM."""

    bot_id: int
    chat_id: int
    user_id: int
    thread_id: Optional[int] = None
    business_connection_id: Optional[str] = None
    destiny: str = DEFAULT_DESTINY


class BaseStorage(ABC):
    """Все операции атомарны в рамках одного ключа. Между разными ключами гарантий нет и не нужно.

    set_state кладёт метку на вершину истории, set_previous_state снимает её,
    set_state(key, None) сбрасывает историю целиком.
    """

    @abstractmethod
    async def set_state(self, key: StorageKey, state: Optional[str] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_state(self, key: StorageKey) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    async def get_states(self, key: StorageKey) -> List[str]:
        raise NotImplementedError

    @abstractmethod
    async def set_previous_state(self, key: StorageKey) -> Optional[str]:
        """Снимает текущее состояние, возвращает то, что стало текущим."""
        raise NotImplementedError

    @abstractmethod
    async def set_data(self, key: StorageKey, data: Mapping[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_data(self, key: StorageKey) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    async def update_data(self, key: StorageKey, patch: Mapping[str, Any]) -> Dict[str, Any]:
        """Слияние patch с данными как одна операция: параллельные вызовы по одному ключу не теряют записи."""
        raise NotImplementedError

    @abstractmethod
    async def clear(self, key: StorageKey) -> None:
        """Удаляет и состояние, и данные."""
        raise NotImplementedError

    async def get_value(self, key: StorageKey, name: str, default: Any = None) -> Any:
        return (await self.get_data(key)).get(name, default)

    async def close(self) -> None:
        pass
