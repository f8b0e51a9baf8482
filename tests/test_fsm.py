# tests/test_fsm.py
"""
Тесты FSM: состояния и группы, стратегии ключа, MemoryStorage (история, данные, атомарность по ключу), FSMContext.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from tg_dispatch import (
    Dispatcher,
    ExtractionError,
    FSMContext,
    FSMDataValue,
    FSMStateValue,
    Handled,
    KeyStrategy,
    MemoryStorage,
    State,
    StateFilter,
    StatesGroup,
    StorageError,
)
from tg_dispatch.fsm.middleware import FSMContextMiddleware
from tg_dispatch.fsm.state import resolve_state
from tg_dispatch.fsm.storage.base import StorageKey


class Registration(StatesGroup):
    name = State()
    age = State()


KEY = StorageKey(bot_id=1, chat_id=10, user_id=20)
OTHER_KEY = StorageKey(bot_id=1, chat_id=10, user_id=21)


class TestStates:
    """Метки состояний и группы."""

    def test_labels(self):
        assert Registration.name.state == "Registration:name"
        assert str(Registration.age) == "Registration:age"
        assert Registration.name == "Registration:name"
        assert State("standalone").state == "standalone"

    def test_group_membership(self):
        assert "Registration:age" in Registration
        assert Registration.name in Registration
        assert "Other:age" not in Registration
        assert list(Registration) == [Registration.name, Registration.age]

    def test_resolve_state(self):
        assert resolve_state(None) is None
        assert resolve_state("raw") == "raw"
        assert resolve_state(Registration.age) == "Registration:age"
        with pytest.raises(TypeError):
            resolve_state(42)


class TestKeyStrategy:
    """Из чата, пользователя и топика — части ключа."""

    def test_strategies(self):
        assert KeyStrategy.USER_IN_CHAT.apply(10, 20, 5) == (10, 20, None, None)
        assert KeyStrategy.CHAT.apply(10, 20, 5) == (10, 10, None, None)
        assert KeyStrategy.GLOBAL_USER.apply(10, 20, 5) == (20, 20, None, None)
        assert KeyStrategy.USER_IN_THREAD.apply(10, 20, 5) == (10, 20, 5, None)
        assert KeyStrategy.CHAT_THREAD.apply(10, 20, 5) == (10, 10, 5, None)

    def test_business_connection_only_when_enabled(self):
        assert KeyStrategy.USER_IN_CHAT.apply(10, 20, None, "bc").business_connection_id is None
        assert KeyStrategy.USER_IN_CHAT.apply(10, 20, None, "bc", with_connection=True).business_connection_id == "bc"

    def test_middleware_builds_key(self):
        middleware = FSMContextMiddleware(MemoryStorage(), KeyStrategy.CHAT, destiny="quiz")

        fsm = middleware.get_context(chat_id=-100, user_id=7, bot_id=3)

        assert fsm.key == StorageKey(bot_id=3, chat_id=-100, user_id=-100, destiny="quiz")


class TestMemoryStorage:
    """Состояние с историей и данные разговора."""

    @pytest.mark.asyncio
    async def test_state_history(self, storage):
        assert await storage.get_state(KEY) is None

        await storage.set_state(KEY, "a")
        await storage.set_state(KEY, "b")

        assert await storage.get_state(KEY) == "b"
        assert await storage.get_states(KEY) == ["a", "b"]
        assert await storage.set_previous_state(KEY) == "a"
        assert await storage.set_previous_state(KEY) is None
        assert await storage.set_previous_state(KEY) is None

    @pytest.mark.asyncio
    async def test_set_state_none_clears_history(self, storage):
        await storage.set_state(KEY, "a")
        await storage.set_state(KEY, "b")

        await storage.set_state(KEY, None)

        assert await storage.get_state(KEY) is None
        assert await storage.get_states(KEY) == []

    @pytest.mark.asyncio
    async def test_data_is_copied(self, storage):
        payload = {"items": [1]}
        await storage.set_data(KEY, payload)
        payload["items"].append(2)

        data = await storage.get_data(KEY)
        data["items"].append(3)

        assert await storage.get_data(KEY) == {"items": [1]}

    @pytest.mark.asyncio
    async def test_update_data_merges(self, storage):
        await storage.set_data(KEY, {"a": 1, "b": 2})

        merged = await storage.update_data(KEY, {"b": 3, "c": 4})

        assert merged == {"a": 1, "b": 3, "c": 4}
        assert await storage.get_value(KEY, "c") == 4
        assert await storage.get_value(KEY, "zzz", "default") == "default"

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, storage):
        await storage.set_state(KEY, "a")
        await storage.update_data(KEY, {"x": 1})

        assert await storage.get_state(OTHER_KEY) is None
        assert await storage.get_data(OTHER_KEY) == {}

    @pytest.mark.asyncio
    async def test_clear(self, storage):
        await storage.set_state(KEY, "a")
        await storage.update_data(KEY, {"x": 1})

        await storage.clear(KEY)

        assert await storage.get_state(KEY) is None
        assert await storage.get_data(KEY) == {}

    @pytest.mark.asyncio
    async def test_locks_and_records_released(self, storage):
        """Замки и пустые записи не копятся: после clear от тысячи разговоров ничего не остаётся."""
        for user_id in range(1000):
            key = StorageKey(bot_id=1, chat_id=user_id, user_id=user_id)
            await storage.get_state(key)
            await storage.set_state(key, "x")
            await storage.clear(key)

        assert len(storage._locks) == 0
        assert len(storage._records) == 0

    @pytest.mark.asyncio
    async def test_empty_writes_leave_no_record(self, storage):
        await storage.set_state(KEY, None)
        await storage.set_data(KEY, {})
        await storage.update_data(KEY, {})
        await storage.set_state(KEY, "a")
        await storage.set_previous_state(KEY)

        assert storage._records == {}
        assert storage._locks == {}

    @pytest.mark.asyncio
    async def test_concurrent_updates_same_key_not_lost(self, storage):
        """Сотня параллельных update_data по одному ключу — все записи на месте."""
        await asyncio.gather(*(storage.update_data(KEY, {f"k{i}": i}) for i in range(100)))

        data = await storage.get_data(KEY)

        assert data == {f"k{i}": i for i in range(100)}
        assert storage._locks == {}

    @pytest.mark.asyncio
    async def test_locked_key_does_not_block_other_keys(self, storage):
        async with storage.lock(KEY):
            await asyncio.wait_for(storage.update_data(OTHER_KEY, {"free": True}), timeout=1)
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(storage.get_state(KEY), timeout=0.05)

        assert await storage.get_data(OTHER_KEY) == {"free": True}
        assert await storage.get_state(KEY) is None
        assert storage._locks == {}


class TestFSMContext:
    """Обёртка storage + key."""

    @pytest.mark.asyncio
    async def test_roundtrip(self, storage):
        fsm = FSMContext(storage, KEY)

        await fsm.set_state(Registration.name)
        await fsm.set_state(Registration.age)
        merged = await fsm.update_data({"name": "Bob"}, age=30)

        assert await fsm.get_state() == "Registration:age"
        assert await fsm.get_states() == ["Registration:name", "Registration:age"]
        assert merged == {"name": "Bob", "age": 30}
        assert await fsm.get_value("age") == 30
        assert await fsm.set_previous_state() == "Registration:name"

        await fsm.clear()

        assert await fsm.get_state() is None
        assert await fsm.get_data() == {}

    @pytest.mark.asyncio
    async def test_concurrent_dispatches_same_user(self, dispatcher, make_message):
        """Параллельные update одного пользователя: ни одно слияние данных не теряется."""

        @dispatcher.message()
        async def remember(message, state: FSMContext):
            await asyncio.sleep(0)
            await state.update_data({f"m{message.text}": True})
            return "ok"

        outcomes = await asyncio.gather(
            *(dispatcher.feed_update(make_message(str(i), update_id=i)) for i in range(30))
        )

        data = await dispatcher.fsm.get_context(chat_id=42, user_id=42).get_data()

        assert all(outcome.ok for outcome in outcomes)
        assert data == {f"m{i}": True for i in range(30)}


class BrokenStorage(MemoryStorage):
    """Хранилище, которое не может прочитать ни состояние, ни данные."""

    async def get_state(self, key: StorageKey) -> Optional[str]:
        raise StorageError("storage is down")

    async def get_data(self, key: StorageKey) -> Dict[str, Any]:
        raise StorageError("storage is down")


class TestStorageFailures:
    """Сбой хранилища: в фильтре — отказ фильтра, в экстракторе — ошибка извлечения."""

    @pytest.mark.asyncio
    async def test_state_filter_fails_and_next_handler_runs(self, make_message, log_messages):
        dp = Dispatcher(storage=BrokenStorage())
        calls: List[str] = []

        @dp.message(StateFilter(Registration.name))
        async def waiting_name(message):
            calls.append("waiting_name")

        @dp.message()
        async def fallback(message):
            return "fallback"

        outcome = await dp.feed_update(make_message())

        assert outcome.result == "fallback"
        assert calls == []
        assert any("storage is down" in message for message in log_messages)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("extractor", [FSMStateValue(), FSMDataValue("name")])
    async def test_fsm_extractor_reports_storage_error(self, make_message, extractor):
        dp = Dispatcher(storage=BrokenStorage())
        dp.message.register(lambda message, value=extractor: value)

        outcome = await dp.feed_update(make_message())

        assert isinstance(outcome, Handled)
        assert isinstance(outcome.error, ExtractionError)
        assert isinstance(outcome.error.cause, StorageError)
