import os

CONFIG_FILE = "chat_config.json"
BACKEND_URL_ENV = "LOBBY_CHAT_BACKEND_URL"
DEFAULT_ORIGIN = "http://localhost:8000"
DEFAULT_SENDER = "Guest"
MAX_SENDER_LENGTH = 64

ROOMS_PATH = "/api/rooms"
ROOM_MESSAGES_PATH = "/api/rooms/{room_id}/messages"
ROOM_CHANNEL_PATH = "/ws/rooms/{room_id}"

HTTP_TIMEOUT_SECONDS = float(os.environ.get("LOBBY_CHAT_HTTP_TIMEOUT", "10"))
CHANNEL_CONNECT_TIMEOUT_SECONDS = 10.0
RECONNECT_MAX_ATTEMPTS = 5
RECONNECT_BACKOFF_BASE_SECONDS = 0.5
RECONNECT_BACKOFF_MAX_SECONDS = 5.0

DEDUP_WINDOW_SECONDS = 2.0
MAX_RENDERED_MESSAGES = 500

EVENT_BUS_CRITICAL_HANDLER_RETRIES = 1

STYLE = {
    "chat-area": "bg:#000000 #ffffff",
    "input-area": "bg:#222222 #ffffff",
    "sidebar": "bg:#111111 #88ff88",
    "frame.label": "bg:#0000aa #ffffff bold",
    "status": "bg:#004400 #ffffff",
    "completion-menu": "bg:#333333 #ffffff",
    "completion-menu.completion.current": "bg:#00aaaa #000000",
    "sender": "fg:#ffaf00 bold",
    "system": "fg:#888888",
}

CHANNEL_STATUS_STYLES = {
    "idle": "fg:#888888",
    "connecting": "fg:#ffff66",
    "open": "fg:#88ff88",
    "closing": "fg:#ffaf00",
    "closed": "fg:#ff6666",
}
