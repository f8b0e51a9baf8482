"""Итог обработки update: Handled(result), Skipped или Unhandled. EventReturn — что хендлер может вернуть вместо результата."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


class EventReturn(Enum):
    """SKIP — хендлер отказался, скан идёт дальше по тому же обсерверу. CANCEL — обработка заканчивается как Skipped."""

    SKIP = "skip"
    CANCEL = "cancel"


SKIP = EventReturn.SKIP
CANCEL = EventReturn.CANCEL


@dataclass(frozen=True)
class Handled:
    """Update обработан. error заполняется диспетчером, если хендлер, экстрактор или middleware упали."""

    result: Any = None
    error: Optional[BaseException] = None
    handler: Any = None
    router: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Skipped:
    """Обработка остановлена без результата (middleware не пустил дальше или хендлер вернул CANCEL)."""

    router: Optional[str] = None


@dataclass(frozen=True)
class Unhandled:
    """Никто не взялся. Для диспетчера это не ошибка."""


UNHANDLED = Unhandled()

Outcome = Union[Handled, Skipped, Unhandled]


def as_outcome(value: Any, router: Optional[str] = None) -> Outcome:
    """Приводит то, что вернула outer middleware, к Outcome: None — Skipped, CANCEL — Skipped, прочее — Handled."""
    if isinstance(value, (Handled, Skipped, Unhandled)):
        return value
    if value is None or value is CANCEL:
        return Skipped(router=router)
    return Handled(result=value, router=router)
