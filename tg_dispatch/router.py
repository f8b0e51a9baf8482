"""Роутер — группа хендлеров и middleware. Роутеры вкладываются друг в друга через include_router и образуют дерево.

Удобно разнести логику по модулям (меню, оплаты, админка) и повесить middleware только на своё поддерево.
"""

from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from loguru import logger

from .context import Context
from .enums import UpdateType
from .exceptions import SetupError
from .extractors import ExtractorRegistry, default_registry
from .filters import StateFilter, Text
from .fsm.state import StateType
from .middleware import Middleware, run_chain
from .observer import LifecycleObserver, Observer
from .outcome import UNHANDLED, Outcome, Unhandled, as_outcome


class Router:
    """Узел дерева: по обсерверу на каждый UpdateType, outer/inner middlewares, дочерние роутеры.

    Обход: outer-middlewares → свои хендлеры → дочерние роутеры по порядку include_router.
    Первый, кто вернул Handled или Skipped, заканчивает обработку.
    """

    message: Observer
    edited_message: Observer
    channel_post: Observer
    edited_channel_post: Observer
    business_connection: Observer
    business_message: Observer
    edited_business_message: Observer
    deleted_business_messages: Observer
    message_reaction: Observer
    message_reaction_count: Observer
    inline_query: Observer
    chosen_inline_result: Observer
    callback_query: Observer
    shipping_query: Observer
    pre_checkout_query: Observer
    poll: Observer
    poll_answer: Observer
    my_chat_member: Observer
    chat_member: Observer
    chat_join_request: Observer
    chat_boost: Observer
    removed_chat_boost: Observer

    _can_be_child = True

    def __init__(self, name: Optional[str] = None) -> None:
        self.name = name or f"{type(self).__name__}_{id(self):x}"
        self._parent: Optional["Router"] = None
        self._children: List["Router"] = []
        self._outer_middlewares: List[Middleware] = []
        self._inner_middlewares: List[Middleware] = []
        self._inner_chain: Optional[Tuple[Middleware, ...]] = None
        self._frozen = False

        self.observers: Dict[UpdateType, Observer] = {}
        for update_type in UpdateType:
            observer = Observer(update_type, self)
            self.observers[update_type] = observer
            setattr(self, update_type.value, observer)
        self.startup = LifecycleObserver("startup", self)
        self.shutdown = LifecycleObserver("shutdown", self)

    @property
    def parent(self) -> Optional["Router"]:
        return self._parent

    @property
    def children(self) -> Tuple["Router", ...]:
        return tuple(self._children)

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def outer_middlewares(self) -> Tuple[Middleware, ...]:
        return tuple(self._outer_middlewares)

    @property
    def inner_middlewares(self) -> Tuple[Middleware, ...]:
        return tuple(self._inner_middlewares)

    def check_not_frozen(self) -> None:
        if self._frozen:
            raise SetupError(f"router {self.name!r} is frozen: register everything before the first update")

    def include_router(self, router: "Router") -> "Router":
        """Добавляет дочерний роутер в конец. Роутер может быть подключен только к одному родителю и один раз."""
        if not isinstance(router, Router):
            raise SetupError(f"include_router expects Router, got {type(router).__name__}")
        self.check_not_frozen()
        if not router._can_be_child:
            raise SetupError(f"{type(router).__name__} {router.name!r} can only be the root of a tree")
        if router is self:
            raise SetupError(f"router {self.name!r} cannot include itself")
        if router._parent is not None:
            raise SetupError(f"router {router.name!r} is already attached to {router._parent.name!r}")
        if any(ancestor is router for ancestor in self.chain_head):
            raise SetupError(f"including {router.name!r} into {self.name!r} makes a cycle")
        if any(child.name == router.name for child in self._children):
            raise SetupError(f"router {self.name!r} already has a child named {router.name!r}")
        router._parent = self
        self._children.append(router)
        return router

    def include_routers(self, *routers: "Router") -> None:
        for router in routers:
            self.include_router(router)

    def outer_middleware(self, middleware: Middleware) -> Middleware:
        """Оборачивает всё решение роутера, включая дочерние. Можно как декоратор."""
        self.check_not_frozen()
        self._outer_middlewares.append(middleware)
        return middleware

    def inner_middleware(self, middleware: Middleware) -> Middleware:
        """Оборачивает только вызов выбранного хендлера — этого роутера и всех вложенных."""
        self.check_not_frozen()
        self._inner_middlewares.append(middleware)
        return middleware

    def message_handler(
        self,
        text: Optional[str] = None,
        *filters: Any,
        state: StateType = None,
        flags: Optional[Mapping[str, Any]] = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Как в простых ботах: text — точный текст (\"/start\"), state — только в этом FSM-состоянии."""
        return self.message(*_shortcut_filters(text, filters, state), flags=flags)

    def callback_query_handler(
        self,
        data: Optional[str] = None,
        *filters: Any,
        state: StateType = None,
        flags: Optional[Mapping[str, Any]] = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """data — точное значение callback_data кнопки."""
        return self.callback_query(*_shortcut_filters(data, filters, state), flags=flags)

    @property
    def chain_head(self) -> Iterator["Router"]:
        """Сам роутер и все предки до корня."""
        router: Optional[Router] = self
        while router is not None:
            yield router
            router = router._parent

    @property
    def chain_tail(self) -> Iterator["Router"]:
        """Сам роутер и всё поддерево в глубину, в порядке подключения."""
        yield self
        for child in self._children:
            yield from child.chain_tail

    def resolve_used_update_types(self, skip: Iterable[UpdateType] = ()) -> Set[UpdateType]:
        """Виды событий, на которые в поддереве есть хоть один хендлер. Для allowed_updates в getUpdates."""
        skipped = set(skip)
        used: Set[UpdateType] = set()
        for router in self.chain_tail:
            for update_type, observer in router.observers.items():
                if observer.handlers and update_type not in skipped:
                    used.add(update_type)
        return used

    def freeze(self, registry: Optional[ExtractorRegistry] = None) -> None:
        """Фиксирует поддерево: inner-цепочки с учётом предков, экстракторы хендлеров. После — регистрация запрещена."""
        registry = registry if registry is not None else default_registry
        for router in self.chain_tail:
            router._inner_chain = tuple(
                middleware
                for ancestor in reversed(list(router.chain_head))
                for middleware in ancestor._inner_middlewares
            )
            for observer in router.observers.values():
                for handler in observer.handlers:
                    handler.bind(registry)
            router._frozen = True

    def _resolve_inner_chain(self) -> Tuple[Middleware, ...]:
        if self._inner_chain is not None:
            return self._inner_chain
        return tuple(
            middleware for ancestor in reversed(list(self.chain_head)) for middleware in ancestor._inner_middlewares
        )

    async def propagate_event(self, update_type: UpdateType, event: Any, context: Context) -> Outcome:
        """Outer-middlewares роутера вокруг _route. Что бы middleware ни вернула, наружу уходит Outcome."""

        async def route(inner_event: Any, inner_context: Context) -> Outcome:
            return await self._route(update_type, inner_event, inner_context)

        context["event_router"] = self
        result = await run_chain(self._outer_middlewares, route, event, context)
        return as_outcome(result, self.name)

    async def _route(self, update_type: UpdateType, event: Any, context: Context) -> Outcome:
        context["event_router"] = self
        outcome = await self.observers[update_type].trigger(event, context, self._resolve_inner_chain())
        if not isinstance(outcome, Unhandled):
            logger.trace("router {}: {} -> {}", self.name, update_type, type(outcome).__name__)
            return outcome
        for child in self._children:
            outcome = await child.propagate_event(update_type, event, context)
            if not isinstance(outcome, Unhandled):
                return outcome
            context["event_router"] = self
        return UNHANDLED

    async def emit_startup(self, **kwargs: Any) -> None:
        for router in self.chain_tail:
            await router.startup.trigger(router=router, **kwargs)

    async def emit_shutdown(self, **kwargs: Any) -> None:
        for router in self.chain_tail:
            await router.shutdown.trigger(router=router, **kwargs)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def _shortcut_filters(text: Optional[str], filters: Tuple[Any, ...], state: StateType) -> List[Any]:
    prepared: List[Any] = []
    if state is not None:
        prepared.append(StateFilter(state))
    if text is not None:
        prepared.append(Text(text))
    prepared.extend(filters)
    return prepared
