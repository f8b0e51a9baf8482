"""Экстракторы — откуда берутся аргументы хендлера.

Хендлер объявляет, что ему нужно: значением по умолчанию (n: int = TextAs(int)),
аннотацией типа (state: FSMContext) или просто именем параметра (совпадает с ключом контекста).
Список экстракторов хендлера собирается один раз при заморозке дерева, а не на каждом update.
Не смог достать значение — ExtractionError, и дальше по обсерверу диспетчер не идёт.
"""

import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from .context import Context
from .exceptions import ExtractionError
from .filters import CommandObject, event_text, parse_command
from .fsm.context import FSMContext
from .fsm.storage.base import BaseStorage
from .types import Chat, Event, Update, User

MISSING: Any = object()


class Extractor(ABC):
    """Достаёт одно значение из (event, context). Ошибка — только через ExtractionError."""

    @abstractmethod
    async def extract(self, event: Any, context: Context, parameter: str) -> Any:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class EventExtractor(Extractor):
    """Само событие. event_cls — проверить тип (Message, CallbackQuery...)."""

    def __init__(self, event_cls: Optional[type] = None) -> None:
        self.event_cls = event_cls

    async def extract(self, event: Any, context: Context, parameter: str) -> Any:
        if self.event_cls is not None and not isinstance(event, self.event_cls):
            raise ExtractionError(parameter, f"expected {self.event_cls.__name__}, got {type(event).__name__}")
        return event


class ContextValue(Extractor):
    """Значение из контекста по ключу. Нет ключа и нет default — ошибка."""

    def __init__(self, key: str, default: Any = MISSING) -> None:
        self.key = key
        self.default = default

    async def extract(self, event: Any, context: Context, parameter: str) -> Any:
        if self.key in context:
            return context[self.key]
        if self.default is not MISSING:
            return self.default
        raise ExtractionError(parameter, f"no {self.key!r} in context")

    def __repr__(self) -> str:
        return f"ContextValue({self.key!r})"


class ByType(Extractor):
    """Значение из контекста по типу (то, что положили через context.provide)."""

    def __init__(self, cls: type, default: Any = MISSING) -> None:
        self.cls = cls
        self.default = default

    async def extract(self, event: Any, context: Context, parameter: str) -> Any:
        value = context.by_type(self.cls)
        if value is not None:
            return value
        if self.default is not MISSING:
            return self.default
        raise ExtractionError(parameter, f"no {self.cls.__name__} in context")

    def __repr__(self) -> str:
        return f"ByType({self.cls.__name__})"


class ContextExtractor(Extractor):
    """Весь контекст целиком."""

    async def extract(self, event: Any, context: Context, parameter: str) -> Any:
        return context


def _require_fsm(context: Context, parameter: str) -> FSMContext:
    fsm = context.get("state")
    if not isinstance(fsm, FSMContext):
        raise ExtractionError(parameter, "no FSM context for this event")
    return fsm


class FSMStateValue(Extractor):
    """Метка текущего состояния (или None)."""

    async def extract(self, event: Any, context: Context, parameter: str) -> Optional[str]:
        return await _require_fsm(context, parameter).get_state()


class FSMDataValue(Extractor):
    """Данные FSM: весь словарь или одно значение по name."""

    def __init__(self, name: Optional[str] = None, default: Any = MISSING) -> None:
        self.name = name
        self.default = default

    async def extract(self, event: Any, context: Context, parameter: str) -> Any:
        data = await _require_fsm(context, parameter).get_data()
        if self.name is None:
            return data
        if self.name in data:
            return data[self.name]
        if self.default is not MISSING:
            return self.default
        raise ExtractionError(parameter, f"no {self.name!r} in FSM data")


class CommandArgs(Extractor):
    """CommandObject из текста сообщения."""

    def __init__(self, prefix: str = "/") -> None:
        self.prefix = prefix

    async def extract(self, event: Any, context: Context, parameter: str) -> CommandObject:
        command = parse_command(event_text(event), self.prefix)
        if command is None:
            raise ExtractionError(parameter, "event text is not a command")
        return command


class CommandArg(Extractor):
    """Аргумент команды по номеру, с приведением типа: /add 5 → CommandArg(0, int) → 5."""

    def __init__(
        self,
        index: int = 0,
        conv: Callable[[str], Any] = str,
        default: Any = MISSING,
        *,
        prefix: str = "/",
    ) -> None:
        self.index = index
        self.conv = conv
        self.default = default
        self.prefix = prefix

    async def extract(self, event: Any, context: Context, parameter: str) -> Any:
        command = parse_command(event_text(event), self.prefix)
        args = command.arg_list if command is not None else ()
        if self.index >= len(args):
            if self.default is not MISSING:
                return self.default
            raise ExtractionError(parameter, f"command argument #{self.index} is missing")
        return _convert(parameter, args[self.index], self.conv)


class TextAs(Extractor):
    """Текст события, приведённый через conv: TextAs(int) на \"abc\" — ExtractionError."""

    def __init__(self, conv: Callable[[str], Any] = str, *, strip: bool = True) -> None:
        self.conv = conv
        self.strip = strip

    async def extract(self, event: Any, context: Context, parameter: str) -> Any:
        text = event_text(event)
        if text is None:
            raise ExtractionError(parameter, "event has no text")
        return _convert(parameter, text.strip() if self.strip else text, self.conv)

    def __repr__(self) -> str:
        return f"TextAs({getattr(self.conv, '__name__', self.conv)})"


def _convert(parameter: str, raw: str, conv: Callable[[str], Any]) -> Any:
    try:
        return conv(raw)
    except (TypeError, ValueError) as e:
        name = getattr(conv, "__name__", repr(conv))
        raise ExtractionError(parameter, f"cannot convert {raw!r} to {name}", cause=e) from e


class Extract(Extractor):
    """Своя функция: Extract(lambda event, context: ...). Может быть async."""

    def __init__(self, func: Callable[[Any, Context], Any]) -> None:
        self.func = func

    async def extract(self, event: Any, context: Context, parameter: str) -> Any:
        value = self.func(event, context)
        if inspect.isawaitable(value):
            value = await value
        return value

    def __repr__(self) -> str:
        return f"Extract({getattr(self.func, '__qualname__', self.func)!r})"


class ExtractorRegistry:
    """Экстракторы по типу аннотации. Сначала точное совпадение, потом — по подклассу, в порядке регистрации."""

    def __init__(self, *, defaults: bool = True) -> None:
        self._by_type: Dict[type, Extractor] = {}
        if defaults:
            self.register(Context, ContextExtractor())
            self.register(Update, ContextValue("event_update"))
            self.register(FSMContext, ByType(FSMContext))
            self.register(BaseStorage, ByType(BaseStorage))
            self.register(User, ContextValue("event_from_user"))
            self.register(Chat, ContextValue("event_chat"))
            self.register(CommandObject, CommandArgs())

    def register(self, cls: type, extractor: Extractor) -> Extractor:
        if not isinstance(extractor, Extractor):
            raise TypeError(f"extractor must be an Extractor, got {type(extractor).__name__}")
        self._by_type[cls] = extractor
        return extractor

    def resolve(self, annotation: Any) -> Optional[Extractor]:
        if not isinstance(annotation, type):
            return None
        if annotation in self._by_type:
            return self._by_type[annotation]
        if issubclass(annotation, Event):
            return EventExtractor(annotation)
        for cls, extractor in self._by_type.items():
            if issubclass(annotation, cls):
                return extractor
        return None

    def copy(self) -> "ExtractorRegistry":
        clone = ExtractorRegistry(defaults=False)
        clone._by_type = dict(self._by_type)
        return clone

    def __contains__(self, cls: object) -> bool:
        return cls in self._by_type


default_registry = ExtractorRegistry()
