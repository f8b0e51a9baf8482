"""Диспетчер — корневой роутер. Принимает update, определяет вид события и запускает обход дерева. Плюс long polling."""

import asyncio
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional, Set

import aiohttp
from loguru import logger

from .context import Context
from .exceptions import TelegramAPIError
from .extractors import ExtractorRegistry
from .fsm.middleware import FSMContextMiddleware
from .fsm.storage.base import BaseStorage
from .fsm.storage.memory import MemoryStorage
from .fsm.strategy import KeyStrategy
from .middleware import UserContextMiddleware
from .outcome import UNHANDLED, Handled, Outcome, Unhandled
from .router import Router
from .types import Update

if TYPE_CHECKING:
    from .client import Bot


class Dispatcher(Router):
    """Корень дерева. Сам ставит первыми outer-middlewares UserContextMiddleware и FSMContextMiddleware.

    Дерево замораживается при первом update (или явно через freeze()): после этого регистрация запрещена.
    Ошибки хендлеров, экстракторов и middleware логируются и возвращаются как Handled(error=...);
    raise_errors=True — пробросить их вызывающему.
    """

    _can_be_child = False

    def __init__(
        self,
        *,
        storage: Optional[BaseStorage] = None,
        fsm_strategy: KeyStrategy = KeyStrategy.USER_IN_CHAT,
        fsm_with_connection: bool = False,
        extractors: Optional[ExtractorRegistry] = None,
        name: Optional[str] = None,
        log: Optional[Any] = None,
        raise_errors: bool = False,
        **workflow_data: Any,
    ) -> None:
        super().__init__(name=name or "dispatcher")
        self.storage = storage if storage is not None else MemoryStorage()
        self.fsm = FSMContextMiddleware(self.storage, fsm_strategy, with_connection=fsm_with_connection)
        self.extractors = extractors if extractors is not None else ExtractorRegistry()
        self.workflow_data: Dict[str, Any] = dict(workflow_data)
        self.raise_errors = raise_errors
        self._log = log if log is not None else logger

        self._running = False
        self._pending_tasks: Set[asyncio.Task] = set()

        self.outer_middleware(UserContextMiddleware())
        self.outer_middleware(self.fsm)

    def __getitem__(self, key: str) -> Any:
        return self.workflow_data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.workflow_data[key] = value

    def freeze(self, registry: Optional[ExtractorRegistry] = None) -> None:
        if self.frozen:
            return
        super().freeze(registry if registry is not None else self.extractors)
        routers = list(self.chain_tail)
        handlers = sum(len(observer) for router in routers for observer in router.observers.values())
        self._log.debug("router tree frozen: {} routers, {} handlers", len(routers), handlers)

    async def feed_update(self, update: Update, bot: Optional["Bot"] = None, **kwargs: Any) -> Outcome:
        """Одна обработка. kwargs и workflow_data попадают в контекст. Unhandled — не ошибка."""
        self.freeze()
        context = Context(self.workflow_data)
        context.update(kwargs)
        context.provide(self, "dispatcher")
        context.provide(update, "event_update")
        context["event_type"] = update.event_type
        if bot is not None:
            context.provide(bot, "bot")

        try:
            outcome = await self.propagate_event(update.event_type, update.event, context)
        except Exception as e:
            if self.raise_errors:
                raise
            self._log.exception("update {} ({}) failed: {}", update.update_id, update.event_type, e)
            return Handled(error=e, handler=context.get("handler"))

        if isinstance(outcome, Unhandled):
            self._log.debug("update {} ({}) is not handled", update.update_id, update.event_type)
        return outcome

    async def feed_raw_update(self, raw: Dict[str, Any], bot: Optional["Bot"] = None, **kwargs: Any) -> Outcome:
        """То же для сырого dict. Неизвестный вид update — warning и Unhandled."""
        try:
            update = Update.from_dict(raw)
        except ValueError as e:
            self._log.warning("skip update {}: {}", raw.get("update_id"), e)
            return UNHANDLED
        return await self.feed_update(update, bot, **kwargs)

    async def emit_startup(self, **kwargs: Any) -> None:
        self.freeze()
        await super().emit_startup(dispatcher=self, **{**self.workflow_data, **kwargs})

    async def emit_shutdown(self, **kwargs: Any) -> None:
        await super().emit_shutdown(dispatcher=self, **{**self.workflow_data, **kwargs})

    def _task_done_callback(self, task: asyncio.Task) -> None:
        """Снимает задачу с учёта, при исключении — логирует."""
        self._pending_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._log.opt(exception=exc).error("update task: {}", exc)

    async def start_polling(
        self,
        bot: "Bot",
        *,
        polling_timeout: int = 30,
        allowed_updates: Optional[Iterable[str]] = None,
        tasks_concurrency_limit: int = 128,
        shutdown_timeout: float = 10.0,
        network_error_pause: float = 15.0,
        error_pause: float = 5.0,
        close_bot_session: bool = True,
        **kwargs: Any,
    ) -> None:
        """Long polling до stop_polling(). Каждый update — отдельная задача (не больше tasks_concurrency_limit одновременно).

        Перед выходом ждёт активные задачи до shutdown_timeout секунд, остальные отменяет, затем shutdown и storage.close().
        """
        self.freeze()
        if allowed_updates is None:
            allowed_updates = sorted(t.value for t in self.resolve_used_update_types())
        allowed = list(allowed_updates)
        semaphore = asyncio.Semaphore(tasks_concurrency_limit)
        offset: Optional[int] = None

        async def process_one(raw: Dict[str, Any]) -> None:
            async with semaphore:
                await self.feed_raw_update(raw, bot, **kwargs)

        await self.emit_startup(bot=bot, **kwargs)
        self._running = True
        try:
            me = await bot.get_me()
            self._log.info("Polling started for @{} (id={})", me.username, me.id)
            while self._running:
                try:
                    updates = await bot.get_updates(offset, timeout=polling_timeout, allowed_updates=allowed)
                except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
                    self._log.warning("get_updates (сеть): {} — пауза {} с", e, network_error_pause)
                    await asyncio.sleep(network_error_pause)
                    continue
                except TelegramAPIError as e:
                    self._log.warning("get_updates: {} — пауза {} с", e, error_pause)
                    await asyncio.sleep(error_pause)
                    continue
                for raw in updates:
                    offset = raw["update_id"] + 1
                    task = asyncio.create_task(process_one(raw))
                    self._pending_tasks.add(task)
                    task.add_done_callback(self._task_done_callback)
        finally:
            self._running = False
            if self._pending_tasks:
                _, pending = await asyncio.wait(set(self._pending_tasks), timeout=shutdown_timeout)
                for t in pending:
                    t.cancel()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)
            await self.emit_shutdown(bot=bot, **kwargs)
            await self.storage.close()
            if close_bot_session:
                await bot.close()
            self._log.info("Polling stopped")

    def stop_polling(self) -> None:
        """Останавливает цикл — start_polling() выйдет после текущего getUpdates."""
        self._running = False

    @property
    def is_polling(self) -> bool:
        return self._running

    def run_polling(self, bot: "Bot", **kwargs: Any) -> None:
        """Блокирующий запуск: asyncio.run(start_polling(...)), Ctrl+C — тихий выход."""
        try:
            asyncio.run(self.start_polling(bot, **kwargs))
        except KeyboardInterrupt:
            pass
