"""Стратегия ключа FSM: чьё это состояние — пользователя в чате, всего чата, пользователя глобально или в топике."""

from enum import Enum
from typing import NamedTuple, Optional


class KeyParts(NamedTuple):
    chat_id: int
    user_id: int
    thread_id: Optional[int]
    business_connection_id: Optional[str]


class KeyStrategy(str, Enum):
    USER_IN_CHAT = "user_in_chat"
    CHAT = "chat"
    GLOBAL_USER = "global_user"
    USER_IN_THREAD = "user_in_thread"
    CHAT_THREAD = "chat_thread"

    def apply(
        self,
        chat_id: int,
        user_id: int,
        thread_id: Optional[int] = None,
        business_connection_id: Optional[str] = None,
        *,
        with_connection: bool = False,
    ) -> KeyParts:
        """Из идентификаторов события собирает части ключа. with_connection=False — бизнес-подключение не учитывается."""
        connection = business_connection_id if with_connection else None
        if self is KeyStrategy.CHAT:
            return KeyParts(chat_id, chat_id, None, connection)
        if self is KeyStrategy.GLOBAL_USER:
            return KeyParts(user_id, user_id, None, connection)
        if self is KeyStrategy.USER_IN_THREAD:
            return KeyParts(chat_id, user_id, thread_id, connection)
        if self is KeyStrategy.CHAT_THREAD:
            return KeyParts(chat_id, chat_id, thread_id, connection)
        return KeyParts(chat_id, user_id, None, connection)
