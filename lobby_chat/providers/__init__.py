from lobby_chat.providers.aiohttp_backend import AiohttpBackend
from lobby_chat.providers.base import (
    BackendError,
    ChannelConnection,
    ChannelConnector,
    JsonTransport,
)

__all__ = [
    "AiohttpBackend",
    "BackendError",
    "ChannelConnection",
    "ChannelConnector",
    "JsonTransport",
]
