"""FSMContext — работа с состоянием одного разговора. В хендлер приходит готовым (параметр state или аннотация FSMContext)."""

from typing import Any, Dict, List, Mapping, Optional

from .state import StateType, resolve_state
from .storage.base import BaseStorage, StorageKey


class FSMContext:
    """Хранилище плюс ключ. Все операции уходят в storage и атомарны по ключу."""

    def __init__(self, storage: BaseStorage, key: StorageKey) -> None:
        self.storage = storage
        self.key = key

    async def get_state(self) -> Optional[str]:
        return await self.storage.get_state(self.key)

    async def set_state(self, state: StateType = None) -> None:
        """Ставит состояние поверх истории. None — сброс истории."""
        await self.storage.set_state(self.key, resolve_state(state))

    async def get_states(self) -> List[str]:
        return await self.storage.get_states(self.key)

    async def set_previous_state(self) -> Optional[str]:
        """Шаг назад по истории. Возвращает новое текущее состояние."""
        return await self.storage.set_previous_state(self.key)

    async def get_data(self) -> Dict[str, Any]:
        return await self.storage.get_data(self.key)

    async def set_data(self, data: Mapping[str, Any]) -> None:
        await self.storage.set_data(self.key, data)

    async def update_data(self, patch: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Dict[str, Any]:
        """update_data({"a": 1}) или update_data(a=1). Возвращает данные после слияния."""
        merged: Dict[str, Any] = dict(patch or {})
        merged.update(kwargs)
        return await self.storage.update_data(self.key, merged)

    async def get_value(self, name: str, default: Any = None) -> Any:
        return await self.storage.get_value(self.key, name, default)

    async def clear(self) -> None:
        await self.storage.clear(self.key)

    def __repr__(self) -> str:
        return f"FSMContext(key={self.key!r})"
