"""Middleware — цепочка вокруг обработки. async (handler, event, context) -> await handler(event, context).

Outer-middleware роутера оборачивает всё решение роутера (свои хендлеры и дочерние роутеры),
inner — только вызов уже выбранного хендлера. Первая зарегистрированная — самая внешняя.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Sequence

from loguru import logger

from .context import Context
from .types import CallbackQuery, Chat, Message, User

Handler = Callable[[Any, Context], Awaitable[Any]]
Middleware = Callable[[Handler, Any, Context], Awaitable[Any]]


class BaseMiddleware(ABC):
    """Middleware-класс: переопредели __call__. Не вызвать handler — значит остановить цепочку со своим результатом."""

    @abstractmethod
    async def __call__(self, handler: Handler, event: Any, context: Context) -> Any:
        raise NotImplementedError


class Continuation:
    """Продолжение (next) для middleware: оставшиеся middlewares плюс конечный вызов. Вызвать можно только один раз."""

    __slots__ = ("_middlewares", "_terminal", "_index", "_called")

    def __init__(self, middlewares: Sequence[Middleware], terminal: Handler, index: int = 0) -> None:
        self._middlewares = middlewares
        self._terminal = terminal
        self._index = index
        self._called = False

    @property
    def remaining(self) -> int:
        return len(self._middlewares) - self._index

    async def __call__(self, event: Any, context: Context) -> Any:
        if self._called:
            raise RuntimeError("middleware called next() more than once")
        self._called = True
        if self._index >= len(self._middlewares):
            return await self._terminal(event, context)
        middleware = self._middlewares[self._index]
        return await middleware(Continuation(self._middlewares, self._terminal, self._index + 1), event, context)


async def run_chain(middlewares: Sequence[Middleware], terminal: Handler, event: Any, context: Context) -> Any:
    """Гоняет event и context по цепочке middlewares, в конце — terminal(event, context)."""
    if not middlewares:
        return await terminal(event, context)
    return await Continuation(middlewares, terminal)(event, context)


class UserContextMiddleware(BaseMiddleware):
    """Кладёт в контекст, от кого и откуда событие: event_from_user, event_chat, event_thread_id, event_business_connection_id."""

    async def __call__(self, handler: Handler, event: Any, context: Context) -> Any:
        user: Optional[User] = getattr(event, "from_user", None)
        chat: Optional[Chat] = getattr(event, "chat", None)
        message = event.message if isinstance(event, CallbackQuery) else event
        thread_id = business_connection_id = None
        if isinstance(message, Message):
            thread_id = message.message_thread_id
            business_connection_id = message.business_connection_id

        if user is not None:
            context.provide(user, "event_from_user")
        if chat is not None:
            context.provide(chat, "event_chat")
        context["event_thread_id"] = thread_id
        context["event_business_connection_id"] = business_connection_id
        return await handler(event, context)


class LoggingMiddleware(BaseMiddleware):
    """Inner-middleware: пишет в лог, какой хендлер и сколько работал. Ошибки не глотает."""

    def __init__(self, log: Optional[Any] = None) -> None:
        self._log = log if log is not None else logger

    async def __call__(self, handler: Handler, event: Any, context: Context) -> Any:
        handler_object = context.get("handler")
        name = getattr(handler_object, "name", "?")
        started = time.perf_counter()
        try:
            result = await handler(event, context)
        except Exception:
            self._log.debug("handler {} failed after {:.3f}s", name, time.perf_counter() - started)
            raise
        self._log.debug("handler {} done in {:.3f}s -> {!r}", name, time.perf_counter() - started, result)
        return result
