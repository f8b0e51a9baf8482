# tests/test_observer.py
"""
Тесты обсервера: порядок хендлеров, SKIP/CANCEL, общие фильтры обсервера, флаги.
"""

from typing import List

import pytest

from tg_dispatch import (
    CANCEL,
    SKIP,
    Context,
    Dispatcher,
    F,
    Handled,
    Router,
    SetupError,
    Skipped,
    State,
    StateFilter,
    StatesGroup,
    Unhandled,
    UpdateType,
)


class Form(StatesGroup):
    waiting_name = State()
    waiting_age = State()


class TestObserverScan:
    """Первый подходящий хендлер в порядке регистрации."""

    @pytest.mark.asyncio
    async def test_registration_order(self, dispatcher, make_message):
        dispatcher.message.register(lambda message: "first")
        dispatcher.message.register(lambda message: "second")

        outcome = await dispatcher.feed_update(make_message())

        assert outcome.result == "first"

    @pytest.mark.asyncio
    async def test_skip_moves_to_next_handler(self, dispatcher, make_message):
        calls: List[str] = []

        @dispatcher.message()
        async def picky(message):
            calls.append("picky")
            return SKIP

        @dispatcher.message()
        async def anything(message):
            calls.append("anything")
            return "ok"

        outcome = await dispatcher.feed_update(make_message())

        assert outcome.result == "ok"
        assert calls == ["picky", "anything"]

    @pytest.mark.asyncio
    async def test_cancel_ends_as_skipped(self, dispatcher, make_message):
        child = dispatcher.include_router(Router("child"))
        child_calls: List[str] = []
        dispatcher.message.register(lambda message: CANCEL)
        child.message.register(lambda message: child_calls.append("child"))

        outcome = await dispatcher.feed_update(make_message())

        assert isinstance(outcome, Skipped)
        assert child_calls == []

    @pytest.mark.asyncio
    async def test_none_result_is_handled(self, dispatcher, make_message):
        """Хендлер, который ничего не вернул, всё равно обработал update."""
        dispatcher.message.register(lambda message: None)

        outcome = await dispatcher.feed_update(make_message())

        assert isinstance(outcome, Handled)
        assert outcome.ok
        assert outcome.result is None

    @pytest.mark.asyncio
    async def test_skip_with_state_filter_falls_through(self, dispatcher, make_message):
        """Хендлер в состоянии waiting_name отказывается от пустого текста — отвечает следующий."""

        @dispatcher.message(StateFilter(Form.waiting_name))
        async def take_name(message, state):
            if not message.text:
                return SKIP
            await state.update_data(name=message.text)
            return "name saved"

        @dispatcher.message()
        async def fallback(message):
            return "fallback"

        await dispatcher.fsm.get_context(chat_id=42, user_id=42).set_state(Form.waiting_name)

        empty = await dispatcher.feed_update(make_message(""))
        named = await dispatcher.feed_update(make_message("Alice"))

        assert isinstance(empty, Handled)
        assert empty.handler.callback is fallback
        assert named.result == "name saved"
        assert await dispatcher.fsm.get_context(chat_id=42, user_id=42).get_data() == {"name": "Alice"}

    @pytest.mark.asyncio
    async def test_sync_handler_supported(self, dispatcher, make_message):
        def sync_handler(message):
            return message.text.upper()

        dispatcher.message.register(sync_handler)

        assert (await dispatcher.feed_update(make_message("hey"))).result == "HEY"

    @pytest.mark.asyncio
    async def test_other_update_types_not_visible(self, dispatcher, make_callback):
        dispatcher.message.register(lambda message: "message")

        outcome = await dispatcher.feed_update(make_callback())

        assert isinstance(outcome, Unhandled)


class TestObserverFilters:
    """Общие фильтры обсервера и флаги хендлера."""

    @pytest.mark.asyncio
    async def test_observer_filter_blocks_own_handlers_only(self, make_message):
        dp = Dispatcher()
        child = dp.include_router(Router("child"))
        dp.message.filter(F.chat.type == "group")
        dp.message.register(lambda message: "root")
        child.message.register(lambda message: "child")

        private = await dp.feed_update(make_message(chat_type="private"))
        group = await dp.feed_update(make_message(chat_id=-100, chat_type="group"))

        assert private.result == "child"
        assert group.result == "root"

    @pytest.mark.asyncio
    async def test_trigger_directly(self, make_message):
        router = Router("plain")
        router.message.register(lambda message: "direct", F.text == "x")
        update = make_message("x")

        outcome = await router.message.trigger(update.event, Context())

        assert isinstance(outcome, Handled) and outcome.result == "direct"

    def test_flags_are_read_only(self):
        router = Router("flags")
        router.message.register(lambda message: None, flags={"rate_limit": 5})
        handler = router.message.handlers[0]

        assert handler.flags["rate_limit"] == 5
        with pytest.raises(TypeError):
            handler.flags["rate_limit"] = 1  # type: ignore[index]

    def test_handler_with_var_positional_rejected(self):
        router = Router("bad")

        async def bad(*args):
            return None

        with pytest.raises(SetupError, match="args"):
            router.message.register(bad)

    def test_decorator_returns_function(self):
        router = Router("deco")

        @router.message()
        async def handler(message):
            return None

        assert callable(handler)
        assert len(router.message) == 1
        assert router.observers[UpdateType.MESSAGE] is router.message
