"""Update, Message, CallbackQuery и т.д. — тонкие обёртки над JSON от Bot API. Всё, чего нет в атрибутах, лежит в raw."""

from typing import Any, Dict, Optional

from .enums import ContentType, UpdateType


class TelegramObject:
    """База для обёрток. raw — исходный dict, get() — доступ к полям вне типа."""

    __slots__ = ("raw",)

    def __init__(self, raw: Optional[Dict[str, Any]] = None) -> None:
        self.raw: Dict[str, Any] = raw or {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.raw.get(key, default)

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.raw == other.raw  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return id(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.raw!r})"


class User(TelegramObject):
    """Отправитель. id есть всегда, остальное — как пришло."""

    __slots__ = ("id", "is_bot", "first_name", "last_name", "username", "language_code")

    def __init__(self, raw: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(raw)
        self.id: int = self.raw.get("id", 0)
        self.is_bot: bool = bool(self.raw.get("is_bot"))
        self.first_name: str = self.raw.get("first_name") or ""
        self.last_name: Optional[str] = self.raw.get("last_name")
        self.username: Optional[str] = self.raw.get("username")
        self.language_code: Optional[str] = self.raw.get("language_code")

    def __repr__(self) -> str:
        return f"User(id={self.id!r}, username={self.username!r})"


class Chat(TelegramObject):
    __slots__ = ("id", "type", "title", "username", "is_forum")

    def __init__(self, raw: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(raw)
        self.id: int = self.raw.get("id", 0)
        self.type: str = self.raw.get("type") or ""
        self.title: Optional[str] = self.raw.get("title")
        self.username: Optional[str] = self.raw.get("username")
        self.is_forum: bool = bool(self.raw.get("is_forum"))

    def __repr__(self) -> str:
        return f"Chat(id={self.id!r}, type={self.type!r})"


class Event(TelegramObject):
    """Объект события любого вида. from_user и chat достаются из from/user и chat, если они есть."""

    __slots__ = ("from_user", "chat")

    def __init__(self, raw: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(raw)
        user = self.raw.get("from") or self.raw.get("user")
        chat = self.raw.get("chat")
        self.from_user: Optional[User] = User(user) if isinstance(user, dict) else None
        self.chat: Optional[Chat] = Chat(chat) if isinstance(chat, dict) else None


class Message(Event):
    """Сообщение (и его правки, посты в канале, бизнес-сообщения). text — только text, подпись к медиа лежит в caption."""

    __slots__ = ("message_id", "text", "caption", "date", "message_thread_id", "business_connection_id")

    def __init__(self, raw: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(raw)
        self.message_id: int = self.raw.get("message_id", 0)
        self.text: Optional[str] = self.raw.get("text")
        self.caption: Optional[str] = self.raw.get("caption")
        self.date: Optional[int] = self.raw.get("date")
        self.message_thread_id: Optional[int] = self.raw.get("message_thread_id")
        self.business_connection_id: Optional[str] = self.raw.get("business_connection_id")

    @property
    def content_type(self) -> ContentType:
        """Первое известное поле с контентом. Порядок — как в ContentType."""
        for content_type in ContentType:
            if content_type is ContentType.UNKNOWN:
                continue
            if self.raw.get(content_type.value) is not None:
                return content_type
        return ContentType.UNKNOWN

    def __repr__(self) -> str:
        text = self.text or ""
        return f"Message(text={text[:20]!r}...)" if len(text) > 20 else f"Message(text={text!r})"


class CallbackQuery(Event):
    """Нажатие inline-кнопки. chat берётся из message, если он есть."""

    __slots__ = ("id", "data", "message", "chat_instance", "inline_message_id")

    def __init__(self, raw: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(raw)
        self.id: str = self.raw.get("id") or ""
        self.data: Optional[str] = self.raw.get("data")
        message = self.raw.get("message")
        self.message: Optional[Message] = Message(message) if isinstance(message, dict) else None
        self.chat_instance: Optional[str] = self.raw.get("chat_instance")
        self.inline_message_id: Optional[str] = self.raw.get("inline_message_id")
        if self.chat is None and self.message is not None:
            self.chat = self.message.chat

    def __repr__(self) -> str:
        return f"CallbackQuery(data={self.data!r})"


class InlineQuery(Event):
    __slots__ = ("id", "query", "offset")

    def __init__(self, raw: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(raw)
        self.id: str = self.raw.get("id") or ""
        self.query: str = self.raw.get("query") or ""
        self.offset: str = self.raw.get("offset") or ""


_EVENT_CLASSES = {
    UpdateType.MESSAGE: Message,
    UpdateType.EDITED_MESSAGE: Message,
    UpdateType.CHANNEL_POST: Message,
    UpdateType.EDITED_CHANNEL_POST: Message,
    UpdateType.BUSINESS_MESSAGE: Message,
    UpdateType.EDITED_BUSINESS_MESSAGE: Message,
    UpdateType.CALLBACK_QUERY: CallbackQuery,
    UpdateType.INLINE_QUERY: InlineQuery,
}


class Update(TelegramObject):
    """Входящий update. event_type — ровно один вид события, event — обёртка над ним."""

    __slots__ = ("update_id", "event_type", "event")

    def __init__(self, update_id: int, event_type: UpdateType, event: Event, raw: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(raw if raw is not None else {"update_id": update_id, event_type.value: event.raw})
        self.update_id = update_id
        self.event_type = event_type
        self.event = event

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Update":
        """Разбирает сырой update. ValueError — если вид события не распознан."""
        event_type = UpdateType.from_raw(raw)
        if event_type is None:
            raise ValueError(f"unknown update type, keys: {sorted(raw)}")
        event_cls = _EVENT_CLASSES.get(event_type, Event)
        return cls(raw.get("update_id", 0), event_type, event_cls(raw[event_type.value]), raw)

    def __repr__(self) -> str:
        return f"Update(update_id={self.update_id!r}, event_type={self.event_type.value!r})"
