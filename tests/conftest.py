# tests/conftest.py
"""
Общие фикстуры: сборка update'ов, диспетчер с памятью, перехват логов loguru.
"""

from typing import Any, Callable, Dict, Iterator, List, Optional

import pytest
from loguru import logger

from tg_dispatch import Dispatcher, MemoryStorage, Update


def build_message_raw(
    text: Optional[str] = "hello",
    *,
    update_id: int = 1,
    user_id: int = 42,
    chat_id: Optional[int] = None,
    chat_type: str = "private",
    **extra: Any,
) -> Dict[str, Any]:
    message: Dict[str, Any] = {
        "message_id": update_id,
        "date": 1700000000,
        "chat": {"id": chat_id if chat_id is not None else user_id, "type": chat_type},
        "from": {"id": user_id, "is_bot": False, "first_name": "Test", "username": f"user{user_id}"},
    }
    if text is not None:
        message["text"] = text
    message.update(extra)
    return {"update_id": update_id, "message": message}


@pytest.fixture
def make_raw() -> Callable[..., Dict[str, Any]]:
    """Фабрика сырого update (dict, как из getUpdates)."""
    return build_message_raw


@pytest.fixture
def make_message() -> Callable[..., Update]:
    """Фабрика update с сообщением."""

    def _make(text: Optional[str] = "hello", **kwargs: Any) -> Update:
        return Update.from_dict(build_message_raw(text, **kwargs))

    return _make


@pytest.fixture
def make_callback() -> Callable[..., Update]:
    """Фабрика update с нажатием кнопки."""

    def _make(data: str = "btn", *, update_id: int = 1, user_id: int = 42) -> Update:
        return Update.from_dict({
            "update_id": update_id,
            "callback_query": {
                "id": "cb1",
                "from": {"id": user_id, "is_bot": False, "first_name": "Test"},
                "chat_instance": "ci",
                "data": data,
                "message": build_message_raw("menu", user_id=user_id)["message"],
            },
        })

    return _make


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def dispatcher(storage: MemoryStorage) -> Dispatcher:
    return Dispatcher(storage=storage)


@pytest.fixture
def log_messages() -> Iterator[List[str]]:
    """Сообщения loguru уровня DEBUG и выше на время теста."""
    messages: List[str] = []
    sink_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
    yield messages
    logger.remove(sink_id)
