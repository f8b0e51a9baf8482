"""Фильтры в стиле aiogram: F.text == \"/start\", Command(\"start\"), StateFilter(Form.name), композиция через & | ~.

Фильтр только читает событие и контекст. Писать в контекст или FSM он не должен.
"""

import inspect
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, Pattern, Sequence, Tuple, Union

from .context import Context
from .enums import ChatType, ContentType
from .fsm.state import ANY_STATE, StateType, resolve_state
from .types import CallbackQuery, InlineQuery, Message

FilterResult = Union[bool, Awaitable[bool]]


class Filter(ABC):
    """Проверка события. check(event, context) может быть обычной или async. Комбинируется через & | ~."""

    @abstractmethod
    def check(self, event: Any, context: Context) -> FilterResult:
        raise NotImplementedError

    async def __call__(self, event: Any, context: Context) -> bool:
        result = self.check(event, context)
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    def __and__(self, other: Any) -> "Filter":
        return AndFilter(self, as_filter(other))

    def __rand__(self, other: Any) -> "Filter":
        return AndFilter(as_filter(other), self)

    def __or__(self, other: Any) -> "Filter":
        return OrFilter(self, as_filter(other))

    def __ror__(self, other: Any) -> "Filter":
        return OrFilter(as_filter(other), self)

    def __invert__(self) -> "Filter":
        return InvertFilter(self)


class FuncFilter(Filter):
    """Обёртка над функцией: (event) или (event, context), обычная или async."""

    def __init__(self, func: Callable[..., FilterResult]) -> None:
        self.func = func
        self._with_context = _positional_count(func) >= 2

    def check(self, event: Any, context: Context) -> FilterResult:
        if self._with_context:
            return self.func(event, context)
        return self.func(event)

    def __repr__(self) -> str:
        return f"FuncFilter({getattr(self.func, '__qualname__', self.func)!r})"


def _positional_count(func: Callable[..., Any]) -> int:
    try:
        params = inspect.signature(func).parameters.values()
    except (TypeError, ValueError):
        return 1
    if any(p.kind is p.VAR_POSITIONAL for p in params):
        return 2
    return sum(1 for p in params if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD))


def as_filter(value: Any) -> Filter:
    if isinstance(value, Filter):
        return value
    if callable(value):
        return FuncFilter(value)
    raise TypeError(f"filter must be a Filter or a callable, got {type(value).__name__}")


class AndFilter(Filter):
    def __init__(self, *filters: Filter) -> None:
        self.filters: Tuple[Filter, ...] = tuple(filters)

    async def check(self, event: Any, context: Context) -> bool:
        for f in self.filters:
            if not await f(event, context):
                return False
        return True


class OrFilter(Filter):
    def __init__(self, *filters: Filter) -> None:
        self.filters: Tuple[Filter, ...] = tuple(filters)

    async def check(self, event: Any, context: Context) -> bool:
        for f in self.filters:
            if await f(event, context):
                return True
        return False


class InvertFilter(Filter):
    def __init__(self, target: Filter) -> None:
        self.target = target

    async def check(self, event: Any, context: Context) -> bool:
        return not await self.target(event, context)


def and_f(*filters: Any) -> Filter:
    """Склеивает фильтры через AND (с коротким замыканием)."""
    return AndFilter(*(as_filter(f) for f in filters))


def or_f(*filters: Any) -> Filter:
    """Склеивает фильтры через OR."""
    return OrFilter(*(as_filter(f) for f in filters))


def invert_f(target: Any) -> Filter:
    return InvertFilter(as_filter(target))


def event_text(event: Any) -> Optional[str]:
    """Текст события: text или caption сообщения, data у callback, query у inline."""
    if isinstance(event, Message):
        return event.text if event.text is not None else event.caption
    if isinstance(event, CallbackQuery):
        return event.data
    if isinstance(event, InlineQuery):
        return event.query
    return None


def _as_tuple(value: Union[str, Iterable[str], None]) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


class Text(Filter):
    """Текст события: equals / startswith / endswith / contains. Каждое — строка или набор строк, подходит любая."""

    def __init__(
        self,
        equals: Union[str, Iterable[str], None] = None,
        *,
        startswith: Union[str, Iterable[str], None] = None,
        endswith: Union[str, Iterable[str], None] = None,
        contains: Union[str, Iterable[str], None] = None,
        ignore_case: bool = False,
    ) -> None:
        self.ignore_case = ignore_case
        self.equals = self._prepare(equals)
        self.startswith = self._prepare(startswith)
        self.endswith = self._prepare(endswith)
        self.contains = self._prepare(contains)
        if not (self.equals or self.startswith or self.endswith or self.contains):
            raise ValueError("Text filter needs at least one of equals/startswith/endswith/contains")

    def _prepare(self, value: Union[str, Iterable[str], None]) -> Tuple[str, ...]:
        values = _as_tuple(value)
        return tuple(v.lower() for v in values) if self.ignore_case else values

    def check(self, event: Any, context: Context) -> bool:
        text = event_text(event)
        if text is None:
            return False
        if self.ignore_case:
            text = text.lower()
        if self.equals and text in self.equals:
            return True
        if self.startswith and text.startswith(self.startswith):
            return True
        if self.endswith and text.endswith(self.endswith):
            return True
        return any(part in text for part in self.contains)

    def __repr__(self) -> str:
        return f"Text(equals={self.equals!r}, startswith={self.startswith!r})"


@dataclass(frozen=True)
class CommandObject:
    """Разобранная команда: /start@my_bot deep_link → prefix=\"/\", command=\"start\", mention=\"my_bot\", args=\"deep_link\"."""

    prefix: str
    command: str
    mention: Optional[str] = None
    args: Optional[str] = None

    @property
    def arg_list(self) -> Tuple[str, ...]:
        return tuple(self.args.split()) if self.args else ()


def parse_command(text: Optional[str], prefixes: str = "/") -> Optional[CommandObject]:
    """None — если текст не команда."""
    if not text:
        return None
    head, _, args = text.strip().partition(" ")
    if not head or head[0] not in prefixes:
        return None
    command, _, mention = head[1:].partition("@")
    if not command:
        return None
    return CommandObject(prefix=head[0], command=command, mention=mention or None, args=args.strip() or None)


class Command(Filter):
    """Команда из списка. Command(\"start\", \"help\"), Command(re.compile(r\"item_\\d+\")). Чужой @mention отсекается, если бот в контексте знает свой username."""

    def __init__(
        self,
        *commands: Union[str, Pattern[str]],
        prefix: str = "/",
        ignore_case: bool = False,
        ignore_mention: bool = False,
    ) -> None:
        if not commands:
            raise ValueError("Command filter needs at least one command")
        self.prefix = prefix
        self.ignore_case = ignore_case
        self.ignore_mention = ignore_mention
        prepared = []
        for command in commands:
            if isinstance(command, str):
                command = command.lstrip(prefix)
                if ignore_case:
                    command = command.lower()
            elif ignore_case:
                command = re.compile(command.pattern, command.flags | re.IGNORECASE)
            prepared.append(command)
        self.commands: Tuple[Union[str, Pattern[str]], ...] = tuple(prepared)

    def check(self, event: Any, context: Context) -> bool:
        if not isinstance(event, Message):
            return False
        command = parse_command(event.text, self.prefix)
        if command is None:
            return False
        if command.mention and not self.ignore_mention:
            username = getattr(context.get("bot"), "username", None)
            if username and command.mention.lower() != username.lower():
                return False
        name = command.command.lower() if self.ignore_case else command.command
        for allowed in self.commands:
            if isinstance(allowed, str):
                if name == allowed:
                    return True
            elif allowed.fullmatch(command.command):
                return True
        return False

    def __repr__(self) -> str:
        return f"Command({', '.join(map(repr, self.commands))})"


class ChatTypeFilter(Filter):
    def __init__(self, *chat_types: Union[ChatType, str]) -> None:
        self.chat_types = frozenset(ChatType(t).value for t in chat_types)

    def check(self, event: Any, context: Context) -> bool:
        chat = context.get("event_chat") or getattr(event, "chat", None)
        return chat is not None and chat.type in self.chat_types


class ContentTypeFilter(Filter):
    """Тип контента сообщения. ContentTypeFilter(ContentType.PHOTO, \"video\")."""

    def __init__(self, *content_types: Union[ContentType, str]) -> None:
        if not content_types:
            raise ValueError("ContentTypeFilter needs at least one content type")
        self.content_types = frozenset(ContentType(t) for t in content_types)

    def check(self, event: Any, context: Context) -> bool:
        return isinstance(event, Message) and event.content_type in self.content_types


class FromUserFilter(Filter):
    def __init__(self, *user_ids: int) -> None:
        self.user_ids = frozenset(user_ids)

    def check(self, event: Any, context: Context) -> bool:
        user = context.get("event_from_user") or getattr(event, "from_user", None)
        return user is not None and user.id in self.user_ids


class StateFilter(Filter):
    """Текущее FSM-состояние — одно из указанных. \"*\" — любое (в том числе без состояния), None — состояния нет."""

    def __init__(self, *states: Any) -> None:
        if not states:
            raise ValueError("StateFilter needs at least one state")
        labels = set()
        for state in states:
            if isinstance(state, type) and hasattr(state, "__states__"):
                labels.update(s.state for s in state)
            else:
                labels.add(resolve_state(state))
        self.states = frozenset(labels)

    async def check(self, event: Any, context: Context) -> bool:
        if ANY_STATE in self.states:
            return True
        fsm = context.get("state")
        current = await fsm.get_state() if fsm is not None else None
        return current in self.states

    def __repr__(self) -> str:
        return f"StateFilter({sorted(map(str, self.states))!r})"


_MISSING = object()


class MagicFilter(Filter):
    """F.<путь> с операцией. F.text == \"/start\", F.from_user.id.in_({1, 2}), F.data.startswith(\"buy:\"), просто F.photo — \"поле непустое\"."""

    __slots__ = ("_path", "_op")

    def __init__(self, path: Tuple[str, ...] = (), op: Optional[Tuple[str, Any]] = None) -> None:
        self._path = path
        self._op = op

    def __getattr__(self, name: str) -> "MagicFilter":
        if name.startswith("_"):
            raise AttributeError(name)
        if self._op is not None:
            raise AttributeError(f"cannot access {name!r} after an operation")
        return MagicFilter(self._path + (name,))

    def _with(self, op: str, value: Any) -> "MagicFilter":
        return MagicFilter(self._path, (op, value))

    def __eq__(self, value: object) -> "MagicFilter":  # type: ignore[override]
        return self._with("eq", value)

    def __ne__(self, value: object) -> "MagicFilter":  # type: ignore[override]
        return self._with("ne", value)

    def __hash__(self) -> int:
        return id(self)

    def in_(self, container: Iterable[Any]) -> "MagicFilter":
        return self._with("in", frozenset(container) if not isinstance(container, (str, Sequence)) else container)

    def startswith(self, prefix: Union[str, Tuple[str, ...]]) -> "MagicFilter":
        return self._with("startswith", prefix)

    def endswith(self, suffix: Union[str, Tuple[str, ...]]) -> "MagicFilter":
        return self._with("endswith", suffix)

    def contains(self, item: Any) -> "MagicFilter":
        return self._with("contains", item)

    def regexp(self, pattern: Union[str, Pattern[str]]) -> "MagicFilter":
        return self._with("regexp", re.compile(pattern) if isinstance(pattern, str) else pattern)

    def func(self, predicate: Callable[[Any], Any]) -> "MagicFilter":
        return self._with("func", predicate)

    def resolve(self, event: Any) -> Any:
        value = event
        for name in self._path:
            value = getattr(value, name, _MISSING)
            if value is _MISSING or value is None:
                return None
        return value

    def check(self, event: Any, context: Context) -> bool:
        value = self.resolve(event)
        if self._op is None:
            return bool(value)
        op, arg = self._op
        if op == "eq":
            return value == arg
        if op == "ne":
            return value != arg
        if value is None:
            return False
        if op == "in":
            return value in arg
        if op == "startswith":
            return isinstance(value, str) and value.startswith(arg)
        if op == "endswith":
            return isinstance(value, str) and value.endswith(arg)
        if op == "contains":
            return arg in value
        if op == "regexp":
            return isinstance(value, str) and arg.search(value) is not None
        return bool(arg(value))

    def __repr__(self) -> str:
        path = ".".join(("F",) + self._path)
        return path if self._op is None else f"{path}.{self._op[0]}({self._op[1]!r})"


F = MagicFilter()
