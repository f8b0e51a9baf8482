"""Контекст одной обработки: dict по строковым ключам плюс значения по типу. Живёт ровно один update."""

from typing import Any, Dict, Optional, Type, TypeVar

T = TypeVar("T")


class Context(Dict[str, Any]):
    """То, что middleware кладут, а фильтры, экстракторы и хендлеры читают. Один экземпляр на одну обработку — без блокировок."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._typed: Dict[type, Any] = {}

    def provide(self, value: Any, key: Optional[str] = None, *, as_type: Optional[type] = None) -> Any:
        """Кладёт значение по типу (type(value) или as_type) и, если задан key, ещё и по строке."""
        self._typed[as_type or type(value)] = value
        if key is not None:
            self[key] = value
        return value

    def by_type(self, cls: Type[T], default: Any = None) -> Optional[T]:
        """Значение по точному типу, затем — первое подходящее по isinstance."""
        if cls in self._typed:
            return self._typed[cls]
        for value in self._typed.values():
            if isinstance(value, cls):
                return value
        return default

    def has_type(self, cls: type) -> bool:
        return self.by_type(cls) is not None

    def copy(self) -> "Context":  # type: ignore[override]
        clone = Context(self)
        clone._typed = dict(self._typed)
        return clone
