"""Минимальный клиент Bot API на aiohttp: getMe, getUpdates, sendMessage и общий request(). Ровно столько, чтобы крутить polling."""

import json
from typing import Any, Dict, List, Optional, Sequence

import aiohttp
from loguru import logger

from .exceptions import TelegramAPIError
from .types import User

BASE_URL = "https://api.telegram.org"


class Bot:
    """Токен и сессия. id берётся из токена сразу, username — после get_me()."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = BASE_URL,
        session: Optional[aiohttp.ClientSession] = None,
        log: Optional[Any] = None,
    ) -> None:
        """token — от @BotFather. session — своя aiohttp-сессия (закрывать её тогда тоже тебе). log — свой логгер."""
        if not token or ":" not in token:
            raise ValueError("token must look like '<bot_id>:<secret>'")
        self.token = token
        self.base_url = base_url.rstrip("/")
        self._log = log if log is not None else logger
        self._session = session
        self._own_session = session is None
        bot_id = token.split(":", 1)[0]
        self.id: Optional[int] = int(bot_id) if bot_id.isdigit() else None
        self.username: Optional[str] = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={"Content-Type": "application/json"})
            self._own_session = True
        return self._session

    def _url(self, method: str) -> str:
        return f"{self.base_url}/bot{self.token}/{method}"

    async def request(self, method: str, *, request_timeout: Optional[float] = None, **params: Any) -> Any:
        """Вызов метода API. None-параметры не отправляются. ok=false — TelegramAPIError, сетевые ошибки летят как есть."""
        payload = {key: value for key, value in params.items() if value is not None}
        client_timeout = aiohttp.ClientTimeout(total=request_timeout) if request_timeout is not None else None
        async with self.session.post(self._url(method), json=payload, timeout=client_timeout) as resp:
            body = await resp.text()
        try:
            data = json.loads(body) if body else {}
        except json.JSONDecodeError as e:
            raise TelegramAPIError(method, f"invalid JSON in response: {body[:200]!r}", resp.status) from e
        if not data.get("ok"):
            self._log.debug("{} {}: {}", method, resp.status, body[:200])
            raise TelegramAPIError(method, data.get("description") or "unknown error", data.get("error_code"))
        return data.get("result")

    async def get_me(self) -> User:
        me = User(await self.request("getMe"))
        self.id = me.id
        self.username = me.username
        return me

    async def get_updates(
        self,
        offset: Optional[int] = None,
        *,
        limit: int = 100,
        timeout: int = 30,
        allowed_updates: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Long polling: ждёт до timeout секунд. Клиентский таймаут — с запасом на сеть."""
        return await self.request(
            "getUpdates",
            request_timeout=timeout + 10,
            offset=offset,
            limit=limit,
            allowed_updates=list(allowed_updates) if allowed_updates is not None else None,
            timeout=timeout,
        ) or []

    async def send_message(self, chat_id: int, text: str, **params: Any) -> Dict[str, Any]:
        return await self.request("sendMessage", chat_id=chat_id, text=text, **params)

    async def close(self) -> None:
        if self._own_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "Bot":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"Bot(id={self.id!r}, username={self.username!r})"
