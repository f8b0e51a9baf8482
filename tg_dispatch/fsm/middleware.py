"""Outer-middleware, которая по событию собирает ключ FSM и кладёт FSMContext в контекст как state."""

from typing import Any, Optional

from ..context import Context
from ..middleware import BaseMiddleware, Handler
from .context import FSMContext
from .storage.base import DEFAULT_DESTINY, BaseStorage, StorageKey
from .strategy import KeyStrategy


class FSMContextMiddleware(BaseMiddleware):
    """Нужна после UserContextMiddleware: берёт event_from_user и event_chat. Нет пользователя — нет и FSM."""

    def __init__(
        self,
        storage: BaseStorage,
        strategy: KeyStrategy = KeyStrategy.USER_IN_CHAT,
        *,
        destiny: str = DEFAULT_DESTINY,
        with_connection: bool = False,
    ) -> None:
        self.storage = storage
        self.strategy = strategy
        self.destiny = destiny
        self.with_connection = with_connection

    async def __call__(self, handler: Handler, event: Any, context: Context) -> Any:
        fsm = self.resolve_event_context(context)
        context["fsm_storage"] = self.storage
        context.provide(self.storage, as_type=BaseStorage)
        if fsm is not None:
            context.provide(fsm, "state")
        return await handler(event, context)

    def resolve_event_context(self, context: Context) -> Optional[FSMContext]:
        user = context.get("event_from_user")
        chat = context.get("event_chat")
        if user is None:
            return None
        bot = context.get("bot")
        return self.get_context(
            chat_id=chat.id if chat is not None else user.id,
            user_id=user.id,
            thread_id=context.get("event_thread_id"),
            business_connection_id=context.get("event_business_connection_id"),
            bot_id=getattr(bot, "id", None) or 0,
        )

    def get_context(
        self,
        chat_id: int,
        user_id: int,
        *,
        thread_id: Optional[int] = None,
        business_connection_id: Optional[str] = None,
        bot_id: int = 0,
        destiny: Optional[str] = None,
    ) -> FSMContext:
        """FSMContext для произвольного разговора — например, чтобы сбросить состояние из фоновой задачи."""
        parts = self.strategy.apply(
            chat_id, user_id, thread_id, business_connection_id, with_connection=self.with_connection
        )
        key = StorageKey(
            bot_id=bot_id,
            chat_id=parts.chat_id,
            user_id=parts.user_id,
            thread_id=parts.thread_id,
            business_connection_id=parts.business_connection_id,
            destiny=destiny or self.destiny,
        )
        return FSMContext(self.storage, key)
