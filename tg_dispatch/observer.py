"""Обсервер — упорядоченный список хендлеров одного вида событий внутри роутера. Срабатывает первый подходящий."""

import inspect
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from .context import Context
from .enums import UpdateType
from .filters import Filter, as_filter
from .handler import HandlerObject, check_filters
from .middleware import Middleware, run_chain
from .outcome import CANCEL, SKIP, UNHANDLED, Handled, Outcome, Skipped

if TYPE_CHECKING:
    from .router import Router


class Observer:
    """router.message(F.text == \"/start\") — декоратор; router.message.register(func, ...) — то же без декоратора."""

    def __init__(self, update_type: UpdateType, router: "Router") -> None:
        self.update_type = update_type
        self.router = router
        self._handlers: List[HandlerObject] = []
        self._filters: List[Filter] = []

    @property
    def handlers(self) -> Tuple[HandlerObject, ...]:
        return tuple(self._handlers)

    @property
    def filters(self) -> Tuple[Filter, ...]:
        return tuple(self._filters)

    def filter(self, *filters: Any) -> None:
        """Общие фильтры на весь обсервер: не прошли — ни один хендлер не смотрится, но дочерние роутеры пробуются."""
        self.router.check_not_frozen()
        self._filters.extend(as_filter(f) for f in filters)

    def register(
        self,
        callback: Callable[..., Any],
        *filters: Any,
        flags: Optional[Mapping[str, Any]] = None,
    ) -> Callable[..., Any]:
        """Добавляет хендлер в конец. Порядок регистрации = порядок проверки."""
        self.router.check_not_frozen()
        handler = HandlerObject(callback, filters, flags)
        self._handlers.append(handler)
        logger.trace("router {}: {} handler {} registered", self.router.name, self.update_type, handler.name)
        return callback

    def __call__(
        self,
        *filters: Any,
        flags: Optional[Mapping[str, Any]] = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            return self.register(func, *filters, flags=flags)

        return decorator

    async def trigger(self, event: Any, context: Context, middlewares: Sequence[Middleware] = ()) -> Outcome:
        """Скан хендлеров по порядку: фильтры → экстракторы → inner-middlewares → хендлер.

        SKIP от хендлера — смотрим следующий, CANCEL — Skipped, иначе Handled.
        ExtractionError и ошибки хендлера летят наружу и скан прекращают.
        """
        if self._filters and not await check_filters(self._filters, event, context, f"{self.router.name}.{self.update_type}"):
            return UNHANDLED
        for handler in self._handlers:
            if not await handler.check(event, context):
                continue
            context["handler"] = handler
            args, kwargs = await handler.extract(event, context)

            async def terminal(_event: Any, _context: Context, handler: HandlerObject = handler) -> Any:
                return await handler.call(args, kwargs)

            result = await run_chain(middlewares, terminal, event, context)
            if result is SKIP:
                logger.trace("router {}: handler {} skipped", self.router.name, handler.name)
                continue
            if result is CANCEL:
                return Skipped(router=self.router.name)
            return Handled(result=result, handler=handler, router=self.router.name)
        return UNHANDLED

    def __len__(self) -> int:
        return len(self._handlers)

    def __repr__(self) -> str:
        return f"Observer({self.update_type.value!r}, handlers={len(self._handlers)})"


class LifecycleObserver:
    """startup/shutdown: список функций, каждая получает из переданных данных только те аргументы, что объявила."""

    def __init__(self, name: str, router: "Router") -> None:
        self.name = name
        self.router = router
        self._callbacks: List[Callable[..., Any]] = []

    @property
    def callbacks(self) -> Tuple[Callable[..., Any], ...]:
        return tuple(self._callbacks)

    def register(self, callback: Callable[..., Any]) -> Callable[..., Any]:
        self.router.check_not_frozen()
        self._callbacks.append(callback)
        return callback

    def __call__(self) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        return self.register

    async def trigger(self, **kwargs: Any) -> None:
        for callback in self._callbacks:
            result = callback(**_accepted_kwargs(callback, kwargs))
            if inspect.isawaitable(result):
                await result


def _accepted_kwargs(callback: Callable[..., Any], kwargs: Mapping[str, Any]) -> Mapping[str, Any]:
    params = inspect.signature(callback).parameters.values()
    if any(p.kind is p.VAR_KEYWORD for p in params):
        return kwargs
    names: Iterable[str] = (p.name for p in params if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY))
    return {name: kwargs[name] for name in names if name in kwargs}
