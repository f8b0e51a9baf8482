"""HandlerObject — зарегистрированный хендлер: функция, его фильтры, флаги и список экстракторов под параметры."""

import inspect
import typing
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from loguru import logger

from .context import Context
from .exceptions import ExtractionError, SetupError
from .extractors import ContextValue, EventExtractor, Extractor, ExtractorRegistry, MISSING, default_registry
from .filters import Filter, as_filter


class BoundParameter(NamedTuple):
    name: str
    positional: bool
    extractor: Extractor


async def check_filters(filters: Sequence[Filter], event: Any, context: Context, owner: str = "") -> bool:
    """Все фильтры по порядку, до первого отказа. Упавший фильтр — в лог и считается отказом."""
    for f in filters:
        try:
            if not await f(event, context):
                return False
        except Exception as e:
            logger.exception("filter {!r} of {} failed: {}", f, owner or "observer", e)
            return False
    return True


def _type_hints(callback: Callable[..., Any]) -> Dict[str, Any]:
    target = callback if inspect.isfunction(callback) or inspect.ismethod(callback) else type(callback).__call__
    try:
        return typing.get_type_hints(target)
    except Exception:
        return dict(getattr(target, "__annotations__", {}))


class HandlerObject:
    """Неизменяем после регистрации. Параметры функции превращаются в экстракторы при bind(), один раз."""

    def __init__(
        self,
        callback: Callable[..., Any],
        filters: Iterable[Any] = (),
        flags: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if not callable(callback):
            raise SetupError(f"handler must be callable, got {type(callback).__name__}")
        self.callback = callback
        self.filters: Tuple[Filter, ...] = tuple(as_filter(f) for f in filters)
        self.flags: Mapping[str, Any] = MappingProxyType(dict(flags or {}))
        self._signature = inspect.signature(callback)
        self._bound: Optional[Tuple[BoundParameter, ...]] = None
        self._registry: Optional[ExtractorRegistry] = None
        self._var_keyword = any(p.kind is p.VAR_KEYWORD for p in self._signature.parameters.values())
        if any(p.kind is p.VAR_POSITIONAL for p in self._signature.parameters.values()):
            raise SetupError(f"handler {self.name} must not take *args")

    @property
    def name(self) -> str:
        return getattr(self.callback, "__qualname__", None) or repr(self.callback)

    @property
    def parameters(self) -> Tuple[BoundParameter, ...]:
        if self._bound is None:
            self.bind(default_registry)
        return self._bound  # type: ignore[return-value]

    def bind(self, registry: ExtractorRegistry) -> None:
        """Параметр → экстрактор: Extractor по умолчанию, затем тип аннотации, первый параметр — событие, иначе ключ контекста с таким именем."""
        if self._bound is not None and self._registry is registry:
            return
        hints = _type_hints(self.callback)
        bound: List[BoundParameter] = []
        for index, param in enumerate(self._signature.parameters.values()):
            if param.kind is param.VAR_KEYWORD:
                continue
            positional = param.kind is param.POSITIONAL_ONLY
            if isinstance(param.default, Extractor):
                extractor: Optional[Extractor] = param.default
            else:
                extractor = registry.resolve(hints.get(param.name))
            if extractor is None:
                if index == 0:
                    extractor = EventExtractor()
                else:
                    default = MISSING if param.default is param.empty else param.default
                    extractor = ContextValue(param.name, default)
            bound.append(BoundParameter(param.name, positional, extractor))
        self._bound = tuple(bound)
        self._registry = registry

    async def check(self, event: Any, context: Context) -> bool:
        return await check_filters(self.filters, event, context, self.name)

    async def extract(self, event: Any, context: Context) -> Tuple[List[Any], Dict[str, Any]]:
        """Экстракторы по порядку объявления. Первая ошибка прерывает всё."""
        args: List[Any] = []
        kwargs: Dict[str, Any] = {}
        for param in self.parameters:
            try:
                value = await param.extractor.extract(event, context, param.name)
            except ExtractionError:
                raise
            except Exception as e:
                raise ExtractionError(param.name, f"{type(e).__name__}: {e}", cause=e) from e
            if param.positional:
                args.append(value)
            else:
                kwargs[param.name] = value
        if self._var_keyword:
            for key, value in context.items():
                if isinstance(key, str) and key not in kwargs:
                    kwargs[key] = value
        return args, kwargs

    async def call(self, args: Sequence[Any], kwargs: Mapping[str, Any]) -> Any:
        result = self.callback(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"HandlerObject({self.name}, filters={len(self.filters)})"
