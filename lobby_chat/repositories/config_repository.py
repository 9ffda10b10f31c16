from __future__ import annotations

import json
import logging
import os
from typing import Any

from pydantic import ValidationError

from lobby_chat.constants import BACKEND_URL_ENV, CONFIG_FILE
from lobby_chat.models import ClientSettings

logger = logging.getLogger(__name__)

SETTINGS_KEYS = ("backend_url", "origin", "username", "room", "reconnect_max_attempts")
USER_KEYS = ("username", "room")


class ConfigRepository:
    def __init__(self, path: str = CONFIG_FILE):
        self.path = path

    def load_config(self) -> dict[str, Any]:
        if os.path.exists(self.path):
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                    if isinstance(data, dict):
                        return data
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Failed to load config from %s: %s", self.path, exc)
        return {}

    def save_config(self, payload: dict[str, Any]) -> None:
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
        except OSError as exc:
            logger.warning("Failed saving config to %s: %s", self.path, exc)

    def load_settings(self, overrides: dict[str, Any] | None = None) -> ClientSettings:
        """Merge file config, the backend URL env var and explicit overrides.

        Later sources win. ``None`` override values are ignored so that unset
        CLI flags do not mask the file.
        """
        clean_overrides = {
            key: value
            for key, value in (overrides or {}).items()
            if value is not None and key in SETTINGS_KEYS
        }
        merged = {
            key: value
            for key, value in self.load_config().items()
            if key in SETTINGS_KEYS
        }
        env_backend = os.environ.get(BACKEND_URL_ENV, "").strip()
        if env_backend:
            merged["backend_url"] = env_backend
        merged.update(clean_overrides)
        try:
            return ClientSettings(**merged)
        except ValidationError as exc:
            logger.warning("Invalid settings in %s; using defaults: %s", self.path, exc)
            return ClientSettings(**clean_overrides)

    def save_settings(self, settings: ClientSettings) -> None:
        payload = self.load_config()
        payload.update(settings.model_dump(include=set(USER_KEYS), exclude_none=True))
        self.save_config(payload)
