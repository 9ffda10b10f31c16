from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from typing import Any, Protocol


class BackendError(RuntimeError):
    """A request to the chat backend failed or returned an unusable body."""


class JsonTransport(Protocol):
    async def get_json(self, path: str) -> Any:
        pass

    async def post_json(self, path: str, payload: dict[str, Any]) -> Any:
        pass


class ChannelConnection(Protocol):
    closed: bool

    def __aiter__(self) -> AsyncIterator[Any]:
        pass

    async def send_str(self, data: str) -> None:
        pass

    async def close(self) -> Any:
        pass


class ChannelConnector(Protocol):
    def connect(self, path: str) -> AbstractAsyncContextManager[ChannelConnection]:
        pass
