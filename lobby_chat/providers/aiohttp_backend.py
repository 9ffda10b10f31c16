from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aiohttp

from lobby_chat.constants import CHANNEL_CONNECT_TIMEOUT_SECONDS, HTTP_TIMEOUT_SECONDS
from lobby_chat.models import ClientSettings
from lobby_chat.providers.base import BackendError

logger = logging.getLogger(__name__)


class AiohttpBackend:
    """HTTP JSON requests and live channel connections over one ClientSession.

    The session is created lazily because aiohttp binds it to the running
    event loop.
    """

    def __init__(
        self,
        settings: ClientSettings,
        timeout_seconds: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.settings = settings
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    def http_url(self, path: str) -> str:
        return f"{self.settings.http_base()}{path}"

    def ws_url(self, path: str) -> str:
        return f"{self.settings.ws_base()}{path}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def get_json(self, path: str) -> Any:
        url = self.http_url(path)
        try:
            async with self._get_session().get(url) as response:
                response.raise_for_status()
                raw = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as exc:
            raise BackendError(f"GET {url} failed: {exc}") from exc
        return self._decode(url, raw)

    async def post_json(self, path: str, payload: dict[str, Any]) -> Any:
        url = self.http_url(path)
        try:
            async with self._get_session().post(url, json=payload) as response:
                response.raise_for_status()
                raw = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as exc:
            raise BackendError(f"POST {url} failed: {exc}") from exc
        return self._decode(url, raw)

    def _decode(self, url: str, raw: str) -> Any:
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise BackendError(f"Invalid JSON from {url}: {exc}") from exc

    @asynccontextmanager
    async def connect(self, path: str) -> AsyncIterator[aiohttp.ClientWebSocketResponse]:
        url = self.ws_url(path)
        try:
            ws = await asyncio.wait_for(
                self._get_session().ws_connect(url),
                timeout=CHANNEL_CONNECT_TIMEOUT_SECONDS,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise BackendError(f"Live channel {url} failed to open: {exc}") from exc
        try:
            yield ws
        finally:
            if not ws.closed:
                await ws.close()

    async def close(self) -> None:
        session = self._session
        self._session = None
        if session is not None and not session.closed:
            await session.close()
