from __future__ import annotations

import json
import logging
import os
from typing import Any

from pydantic import ValidationError

from dropin_chat.constants import CONFIG_FILE, DEFAULT_API_URL, DEFAULT_SOCKET_URL
from dropin_chat.models import ClientSettings

logger = logging.getLogger(__name__)


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
        merged: dict[str, Any] = {
            "api_url": DEFAULT_API_URL,
            "socket_url": DEFAULT_SOCKET_URL,
        }
        for key, value in self.load_config().items():
            if value is not None and key in ClientSettings.model_fields:
                merged[key] = value
        for key, value in (overrides or {}).items():
            if value is not None:
                merged[key] = value
        try:
            return ClientSettings.model_validate(merged)
        except ValidationError as exc:
            logger.warning("Invalid settings in %s, using defaults: %s", self.path, exc)
            return ClientSettings(api_url=DEFAULT_API_URL, socket_url=DEFAULT_SOCKET_URL)

    def save_settings(self, settings: ClientSettings) -> None:
        self.save_config(settings.model_dump(exclude_none=True))
