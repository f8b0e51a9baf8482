from .base import DEFAULT_DESTINY, BaseStorage, StorageKey
from .memory import MemoryStorage

__all__ = ["BaseStorage", "DEFAULT_DESTINY", "MemoryStorage", "StorageKey"]
