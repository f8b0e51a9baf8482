"""Диспетчер событий для Telegram-ботов: дерево роутеров, outer/inner middleware, фильтры, экстракторы аргументов, FSM."""

__version__ = "0.1.0"

from .client import Bot
from .context import Context
from .dispatcher import Dispatcher
from .enums import ChatType, ContentType, UpdateType
from .exceptions import DispatchError, ExtractionError, SetupError, StorageError, TelegramAPIError
from .extractors import (
    ByType,
    CommandArg,
    CommandArgs,
    ContextValue,
    Extract,
    Extractor,
    ExtractorRegistry,
    FSMDataValue,
    FSMStateValue,
    TextAs,
)
from .filters import (
    F,
    ChatTypeFilter,
    Command,
    CommandObject,
    ContentTypeFilter,
    Filter,
    FromUserFilter,
    StateFilter,
    Text,
    and_f,
    invert_f,
    or_f,
)
from .fsm import FSMContext, KeyStrategy, MemoryStorage, State, StatesGroup
from .handler import HandlerObject
from .middleware import BaseMiddleware, LoggingMiddleware, UserContextMiddleware
from .outcome import CANCEL, SKIP, UNHANDLED, EventReturn, Handled, Skipped, Unhandled
from .router import Router
from .types import CallbackQuery, Chat, InlineQuery, Message, Update, User

__all__ = [
    "BaseMiddleware",
    "Bot",
    "ByType",
    "CANCEL",
    "CallbackQuery",
    "Chat",
    "ChatType",
    "ChatTypeFilter",
    "Command",
    "CommandArg",
    "CommandArgs",
    "CommandObject",
    "ContentType",
    "ContentTypeFilter",
    "Context",
    "ContextValue",
    "DispatchError",
    "Dispatcher",
    "EventReturn",
    "Extract",
    "ExtractionError",
    "Extractor",
    "ExtractorRegistry",
    "F",
    "FSMContext",
    "FSMDataValue",
    "FSMStateValue",
    "Filter",
    "FromUserFilter",
    "Handled",
    "HandlerObject",
    "InlineQuery",
    "KeyStrategy",
    "LoggingMiddleware",
    "MemoryStorage",
    "Message",
    "Router",
    "SKIP",
    "SetupError",
    "Skipped",
    "State",
    "StateFilter",
    "StatesGroup",
    "StorageError",
    "TelegramAPIError",
    "Text",
    "TextAs",
    "UNHANDLED",
    "Unhandled",
    "Update",
    "UpdateType",
    "User",
    "UserContextMiddleware",
    "and_f",
    "invert_f",
    "or_f",
]
