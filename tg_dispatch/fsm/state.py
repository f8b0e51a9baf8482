"""Объявление состояний: class Form(StatesGroup): name = State(). Метка состояния — \"Form:name\". Везде можно передавать и обычную строку."""

from typing import Any, Iterator, Optional, Tuple, Union

ANY_STATE = "*"


class State:
    """Одно состояние. Имя и группа подставляются, когда State объявлен атрибутом StatesGroup."""

    def __init__(self, state: Optional[str] = None, group_name: Optional[str] = None) -> None:
        self._state = state
        self._group_name = group_name

    def __set_name__(self, owner: type, name: str) -> None:
        if self._state is None:
            self._state = name
        if self._group_name is None:
            self._group_name = owner.__name__

    @property
    def state(self) -> Optional[str]:
        if self._state is None or self._state == ANY_STATE:
            return self._state
        if self._group_name:
            return f"{self._group_name}:{self._state}"
        return self._state

    def __eq__(self, other: object) -> bool:
        if isinstance(other, State):
            return self.state == other.state
        if isinstance(other, str):
            return self.state == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.state)

    def __str__(self) -> str:
        return self.state or ""

    def __repr__(self) -> str:
        return f"State({self.state!r})"


class _StatesGroupMeta(type):
    __states__: Tuple[State, ...]

    def __new__(mcs, name: str, bases: Tuple[type, ...], namespace: dict, **kwargs: Any) -> "_StatesGroupMeta":
        cls = super().__new__(mcs, name, bases, namespace, **kwargs)
        cls.__states__ = tuple(value for value in namespace.values() if isinstance(value, State))
        return cls

    def __iter__(cls) -> Iterator[State]:
        return iter(cls.__states__)

    def __contains__(cls, item: object) -> bool:
        label = resolve_state(item)  # type: ignore[arg-type]
        return any(state.state == label for state in cls.__states__)


class StatesGroup(metaclass=_StatesGroupMeta):
    """Наследуй и объявляй атрибуты State(). \"x in Group\" проверяет метку, итерация — по объявленным State."""


StateType = Union[State, str, None]


def resolve_state(value: Any) -> Optional[str]:
    """State → метка, str → как есть, None → None."""
    if value is None:
        return None
    if isinstance(value, State):
        return value.state
    if isinstance(value, str):
        return value
    raise TypeError(f"state must be State, str or None, got {type(value).__name__}")
