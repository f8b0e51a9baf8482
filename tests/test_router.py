# tests/test_router.py
"""
Тесты дерева роутеров: сборка, проверки include_router, заморозка, порядок обхода.
"""

from typing import List

import pytest

from tg_dispatch import (
    SKIP,
    Command,
    Dispatcher,
    F,
    Handled,
    Router,
    SetupError,
    Skipped,
    Unhandled,
    UpdateType,
)


def _recording_router(name: str, visited: List[str]) -> Router:
    router = Router(name)

    @router.message()
    async def record(message, _name=name):
        visited.append(_name)
        return SKIP

    return router


class TestRouterTree:
    """Сборка дерева и её ограничения."""

    def test_include_router_sets_parent(self):
        """include_router ставит родителя и возвращает дочерний роутер."""
        root, child = Router("root"), Router("child")

        assert root.include_router(child) is child
        assert child.parent is root
        assert root.children == (child,)

    def test_include_routers_keeps_order(self):
        root = Router("root")
        a, b, c = Router("a"), Router("b"), Router("c")

        root.include_routers(a, b, c)

        assert [r.name for r in root.children] == ["a", "b", "c"]
        assert [r.name for r in root.chain_tail] == ["root", "a", "b", "c"]

    def test_include_self_rejected(self):
        root = Router("root")
        with pytest.raises(SetupError, match="itself"):
            root.include_router(root)

    def test_router_attached_only_once(self):
        """Роутер нельзя подключить ко второму родителю."""
        first, second, child = Router("first"), Router("second"), Router("child")
        first.include_router(child)

        with pytest.raises(SetupError, match="already attached"):
            second.include_router(child)

    def test_cycle_rejected(self):
        """Предок не может стать потомком."""
        top, middle = Router("top"), Router("middle")
        top.include_router(middle)

        with pytest.raises(SetupError, match="cycle"):
            middle.include_router(top)

    def test_duplicate_sibling_name_rejected(self):
        root = Router("root")
        root.include_router(Router("menu"))

        with pytest.raises(SetupError, match="menu"):
            root.include_router(Router("menu"))

    def test_same_name_in_different_subtrees_allowed(self):
        root, a, b = Router("root"), Router("a"), Router("b")
        root.include_routers(a, b)

        a.include_router(Router("settings"))
        b.include_router(Router("settings"))

        assert len(list(root.chain_tail)) == 5

    def test_dispatcher_cannot_be_child(self):
        with pytest.raises(SetupError, match="root"):
            Router("root").include_router(Dispatcher())

    def test_include_non_router_rejected(self):
        with pytest.raises(SetupError, match="expects Router"):
            Router("root").include_router(object())  # type: ignore[arg-type]

    def test_chain_head_goes_up_to_root(self):
        root, middle, leaf = Router("root"), Router("middle"), Router("leaf")
        root.include_router(middle).include_router(leaf)

        assert [r.name for r in leaf.chain_head] == ["leaf", "middle", "root"]


class TestFreeze:
    """После заморозки дерево менять нельзя."""

    def test_registration_after_freeze_rejected(self):
        router = Router("root")
        router.freeze()

        async def late(message):
            return "late"

        with pytest.raises(SetupError, match="frozen"):
            router.message.register(late)
        with pytest.raises(SetupError, match="frozen"):
            router.include_router(Router("late"))
        with pytest.raises(SetupError, match="frozen"):
            router.outer_middleware(lambda handler, event, context: handler(event, context))

    def test_freeze_covers_whole_subtree(self):
        root, child = Router("root"), Router("child")
        root.include_router(child)

        root.freeze()

        assert child.frozen

    @pytest.mark.asyncio
    async def test_first_update_freezes_dispatcher(self, dispatcher, make_message):
        await dispatcher.feed_update(make_message())

        assert dispatcher.frozen
        with pytest.raises(SetupError):
            dispatcher.message.register(lambda message: None)

    def test_resolve_used_update_types(self):
        root, child = Router("root"), Router("child")
        root.include_router(child)
        root.message.register(lambda message: None)
        child.callback_query.register(lambda query: None)
        child.edited_message.register(lambda message: None)

        used = root.resolve_used_update_types(skip=[UpdateType.EDITED_MESSAGE])

        assert used == {UpdateType.MESSAGE, UpdateType.CALLBACK_QUERY}


class TestRouting:
    """Порядок обхода и итог обработки."""

    @pytest.mark.asyncio
    async def test_depth_first_in_inclusion_order(self, make_message):
        """Свои хендлеры, потом дети в порядке include_router, каждый — в глубину."""
        visited: List[str] = []
        dp = Dispatcher()
        dp.message.register(lambda message: visited.append("dispatcher") or SKIP)
        a = dp.include_router(_recording_router("a", visited))
        a.include_router(_recording_router("a1", visited))
        a.include_router(_recording_router("a2", visited))
        dp.include_router(_recording_router("b", visited))

        outcome = await dp.feed_update(make_message())

        assert isinstance(outcome, Unhandled)
        assert visited == ["dispatcher", "a", "a1", "a2", "b"]

    @pytest.mark.asyncio
    async def test_first_match_wins_and_siblings_not_visited(self, make_message):
        dp = Dispatcher()
        first, second = Router("first"), Router("second")
        dp.include_routers(first, second)
        calls: List[str] = []

        @first.message(F.text == "ping")
        async def pong(message):
            calls.append("first")
            return "pong"

        @second.message()
        async def fallback(message):
            calls.append("second")
            return "fallback"

        outcome = await dp.feed_update(make_message("ping"))

        assert isinstance(outcome, Handled)
        assert outcome.result == "pong"
        assert outcome.router == "first"
        assert outcome.handler.callback is pong
        assert calls == ["first"]

    @pytest.mark.asyncio
    async def test_outer_middleware_sees_own_router_after_unhandled_sibling(self, make_message):
        """Outer-middleware видит в event_router свой роутер, а не соседа, который только что не обработал update."""
        seen: List[Router] = []
        dp = Dispatcher()
        first, second = Router("first"), Router("second")
        dp.include_routers(first, second)
        first.message.register(lambda message: "never", F.text == "nope")

        @second.outer_middleware
        async def remember(handler, event, context):
            seen.append(context["event_router"])
            return await handler(event, context)

        @dp.outer_middleware
        async def after(handler, event, context):
            result = await handler(event, context)
            seen.append(context["event_router"])
            return result

        outcome = await dp.feed_update(make_message("hello"))

        assert isinstance(outcome, Unhandled)
        assert seen == [second, dp]

    @pytest.mark.asyncio
    async def test_routing_is_deterministic(self, make_message):
        """Одно и то же update на том же дереве — тот же хендлер."""
        dp = Dispatcher()
        dp.message.register(lambda message: "a", F.text.startswith("/"))
        dp.message.register(lambda message: "b")

        results = [(await dp.feed_update(make_message("/go"))).result for _ in range(5)]

        assert results == ["a"] * 5

    @pytest.mark.asyncio
    async def test_admin_subtree_not_entered_when_parent_handles(self, make_message):
        """Хендлер корня сработал — outer-middleware админского поддерева не вызывается."""
        dp = Dispatcher()
        admin = Router("admin")
        dp.include_router(admin)
        guard_calls: List[int] = []

        @admin.outer_middleware
        async def only_admins(handler, event, context):
            guard_calls.append(context["event_from_user"].id)
            if context["event_from_user"].id != 1:
                return Skipped(router="admin")
            return await handler(event, context)

        @dp.message(Command("start"))
        async def start(message):
            return "welcome"

        @admin.message()
        async def admin_panel(message):
            return "panel"

        outcome = await dp.feed_update(make_message("/start", user_id=99))

        assert isinstance(outcome, Handled)
        assert outcome.result == "welcome"
        assert guard_calls == []

    @pytest.mark.asyncio
    async def test_admin_subtree_guard_stops_processing(self, make_message):
        dp = Dispatcher()
        admin = Router("admin")
        dp.include_router(admin)

        @admin.outer_middleware
        async def only_admins(handler, event, context):
            if context["event_from_user"].id != 1:
                return None
            return await handler(event, context)

        admin.message.register(lambda message: "panel")

        denied = await dp.feed_update(make_message("stats", user_id=99))
        allowed = await dp.feed_update(make_message("stats", user_id=1))

        assert isinstance(denied, Skipped)
        assert isinstance(allowed, Handled) and allowed.result == "panel"

    @pytest.mark.asyncio
    async def test_shortcut_decorators(self, dispatcher, make_message, make_callback):
        @dispatcher.message_handler("/help")
        async def help_(message):
            return "help"

        @dispatcher.callback_query_handler("buy")
        async def buy(query):
            return "bought"

        assert (await dispatcher.feed_update(make_message("/help"))).result == "help"
        assert (await dispatcher.feed_update(make_callback("buy"))).result == "bought"
        assert isinstance(await dispatcher.feed_update(make_message("/other")), Unhandled)
