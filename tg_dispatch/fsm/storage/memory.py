"""Хранилище FSM в памяти процесса. Подходит для разработки и одного инстанса бота — после рестарта всё пропадает."""

import asyncio
import copy
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional

from .base import BaseStorage, StorageKey


@dataclass
class _Record:
    states: List[str] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class MemoryStorage(BaseStorage):
    """Данные копируются на входе и выходе — снаружи нельзя поменять то, что лежит в хранилище, мимо update_data.

    Замок ключа живёт, пока его держат или ждут; пустые записи удаляются сразу.
    """

    def __init__(self) -> None:
        self._records: Dict[StorageKey, _Record] = {}
        self._locks: Dict[StorageKey, _KeyLock] = {}

    @asynccontextmanager
    async def lock(self, key: StorageKey) -> AsyncIterator[None]:
        """Замок ключа. Им же пользуются все операции — держи его, только если нужна своя составная операция без вызовов хранилища внутри."""
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if not entry.users:
                del self._locks[key]

    def _record(self, key: StorageKey) -> _Record:
        record = self._records.get(key)
        if record is None:
            record = self._records[key] = _Record()
        return record

    def _prune(self, key: StorageKey) -> None:
        record = self._records.get(key)
        if record is not None and not record.states and not record.data:
            del self._records[key]

    async def set_state(self, key: StorageKey, state: Optional[str] = None) -> None:
        async with self.lock(key):
            if state is None:
                record = self._records.get(key)
                if record is not None:
                    record.states.clear()
                    self._prune(key)
            else:
                self._record(key).states.append(state)

    async def get_state(self, key: StorageKey) -> Optional[str]:
        async with self.lock(key):
            record = self._records.get(key)
            if record is None or not record.states:
                return None
            return record.states[-1]

    async def get_states(self, key: StorageKey) -> List[str]:
        async with self.lock(key):
            record = self._records.get(key)
            return list(record.states) if record is not None else []

    async def set_previous_state(self, key: StorageKey) -> Optional[str]:
        async with self.lock(key):
            record = self._records.get(key)
            if record is None or not record.states:
                return None
            record.states.pop()
            previous = record.states[-1] if record.states else None
            self._prune(key)
            return previous

    async def set_data(self, key: StorageKey, data: Mapping[str, Any]) -> None:
        async with self.lock(key):
            self._record(key).data = copy.deepcopy(dict(data))
            self._prune(key)

    async def get_data(self, key: StorageKey) -> Dict[str, Any]:
        async with self.lock(key):
            record = self._records.get(key)
            return copy.deepcopy(record.data) if record is not None else {}

    async def update_data(self, key: StorageKey, patch: Mapping[str, Any]) -> Dict[str, Any]:
        async with self.lock(key):
            record = self._record(key)
            record.data.update(copy.deepcopy(dict(patch)))
            merged = copy.deepcopy(record.data)
            self._prune(key)
            return merged

    async def clear(self, key: StorageKey) -> None:
        async with self.lock(key):
            self._records.pop(key, None)
