"""FSM: состояния, хранилища, FSMContext. RedisStorage — отдельно, из tg_dispatch.fsm.storage.redis (нужен extra redis)."""

from .context import FSMContext
from .middleware import FSMContextMiddleware
from .state import ANY_STATE, State, StatesGroup, resolve_state
from .storage import DEFAULT_DESTINY, BaseStorage, MemoryStorage, StorageKey
from .strategy import KeyStrategy

__all__ = [
    "ANY_STATE",
    "BaseStorage",
    "DEFAULT_DESTINY",
    "FSMContext",
    "FSMContextMiddleware",
    "KeyStrategy",
    "MemoryStorage",
    "State",
    "StatesGroup",
    "StorageKey",
    "resolve_state",
]
