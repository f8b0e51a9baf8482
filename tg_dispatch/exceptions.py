"""Исключения диспетчера. Ошибки настройки (SetupError) летят до первого update, остальные — в рамках одной обработки."""

from typing import Any, Optional


class DispatchError(Exception):
    """Базовое исключение tg_dispatch."""


class SetupError(DispatchError):
    """Ошибка сборки дерева роутеров: дубли имён, цикл, повторный include, регистрация после freeze."""


class ExtractionError(DispatchError):
    """Экстрактор не смог достать значение для параметра хендлера. Скан обсервера на этом прекращается."""

    def __init__(self, parameter: str, reason: str, *, cause: Optional[BaseException] = None) -> None:
        self.parameter = parameter
        self.reason = reason
        self.cause = cause
        super().__init__(f"extraction failed for {parameter!r}: {reason}")


class StorageError(DispatchError):
    """Хранилище FSM недоступно или не смогло (де)сериализовать данные."""

    def __init__(self, message: str, *, key: Any = None) -> None:
        self.key = key
        super().__init__(message if key is None else f"{message} (key={key!r})")


class TelegramAPIError(DispatchError):
    """Bot API ответил ok=false."""

    def __init__(self, method: str, description: str, error_code: Optional[int] = None) -> None:
        self.method = method
        self.description = description
        self.error_code = error_code
        super().__init__(f"{method}: [{error_code}] {description}")
