"""Configuration handling for the episode bot."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .catalog import DEFAULT_BASE_URL, DEFAULT_TIMEOUT
from .notifier import DEFAULT_IMAGE_URL, DEFAULT_THUMBNAIL_URL
from .scheduler import DEFAULT_INTERVAL, DEFAULT_ITEM_DELAY

DEFAULT_STATE_PATH = "animes.json"


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    discord_webhook_url: str
    jikan_base_url: str = DEFAULT_BASE_URL
    state_path: str = DEFAULT_STATE_PATH
    poll_interval_seconds: float = DEFAULT_INTERVAL
    item_delay_seconds: float = DEFAULT_ITEM_DELAY
    request_timeout_seconds: float = DEFAULT_TIMEOUT
    default_image_url: str = DEFAULT_IMAGE_URL
    thumbnail_url: str = DEFAULT_THUMBNAIL_URL


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative")
    return value


def get_settings() -> Settings:
    """Load settings from environment variables, raising on missing webhook."""
    load_dotenv()

    webhook = os.getenv("DISCORD_WEBHOOK_URL")
    if not webhook:
        raise ValueError("DISCORD_WEBHOOK_URL is required")

    interval = _get_float("POLL_INTERVAL_SECONDS", DEFAULT_INTERVAL)
    if interval == 0:
        raise ValueError("POLL_INTERVAL_SECONDS must be positive")

    return Settings(
        discord_webhook_url=webhook.strip(),
        jikan_base_url=os.getenv("JIKAN_BASE_URL", DEFAULT_BASE_URL).strip(),
        state_path=os.getenv("STATE_PATH", DEFAULT_STATE_PATH).strip(),
        poll_interval_seconds=interval,
        item_delay_seconds=_get_float("ITEM_DELAY_SECONDS", DEFAULT_ITEM_DELAY),
        request_timeout_seconds=_get_float("REQUEST_TIMEOUT_SECONDS", DEFAULT_TIMEOUT),
        default_image_url=os.getenv("DEFAULT_IMAGE_URL", DEFAULT_IMAGE_URL).strip(),
        thumbnail_url=os.getenv("THUMBNAIL_URL", DEFAULT_THUMBNAIL_URL).strip(),
    )
