# anime_episode_bot/notifier.py

from __future__ import annotations

import logging
import time
from typing import Optional, Protocol

import requests

from .models import Announcement, EpisodeRecord, ItemMetadata

LOGGER = logging.getLogger(__name__)

DEFAULT_IMAGE_URL = "https://cdn.myanimelist.net/img/sp/icon/apple-touch-icon-256.png"
DEFAULT_THUMBNAIL_URL = "https://i.imgur.com/Ypz67Uv.png"
EMBED_COLOR = 0xFF5E01
MAX_RATE_LIMIT_RETRIES = 3


class NotificationSink(Protocol):
    def send(self, announcement: Announcement) -> None:
        ...


def build_announcement(
    metadata: ItemMetadata,
    episode: EpisodeRecord,
    *,
    default_image_url: str = DEFAULT_IMAGE_URL,
    thumbnail_url: Optional[str] = DEFAULT_THUMBNAIL_URL,
) -> Announcement:
    """Combine anime metadata and an episode into an announcement."""
    return Announcement(
        title=metadata.title,
        episode_id=episode.id,
        image_url=metadata.image_url or default_image_url,
        thumbnail_url=thumbnail_url,
        color=EMBED_COLOR,
    )


def _build_embed(announcement: Announcement) -> dict:
    """Turn an announcement into a Discord embed."""
    embed = {
        "title": f"New episode available for {announcement.title}!",
        "description": f"Episode {announcement.episode_id} is out now!",
        "color": announcement.color,
        "image": {"url": announcement.image_url},
    }
    if announcement.thumbnail_url:
        embed["thumbnail"] = {"url": announcement.thumbnail_url}
    return embed


class DiscordNotifier:
    """Deliver announcements to one Discord channel through its webhook."""

    def __init__(
        self,
        webhook_url: str,
        *,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, announcement: Announcement) -> None:
        payload = {
            # no @everyone / role pings from anime titles
            "allowed_mentions": {"parse": []},
            "embeds": [_build_embed(announcement)],
        }
        self._deliver(payload)
        LOGGER.info(
            "Discord announcement sent: %s episode %s",
            announcement.title,
            announcement.episode_id,
        )

    def _deliver(self, payload: dict) -> None:
        """POST ``payload``, honouring up to MAX_RATE_LIMIT_RETRIES 429 answers.

        Raises requests.HTTPError once the retries are used up or on any other
        non-2xx answer.
        """
        for attempt in range(MAX_RATE_LIMIT_RETRIES + 1):
            resp = self.session.post(self.webhook_url, json=payload, timeout=self.timeout)
            if resp.status_code != 429:
                resp.raise_for_status()
                return
            if attempt == MAX_RATE_LIMIT_RETRIES:
                break

            delay = _retry_after(resp)
            LOGGER.warning(
                "Discord rate limit hit, waiting %.1fs (attempt %d/%d)",
                delay,
                attempt + 1,
                MAX_RATE_LIMIT_RETRIES,
            )
            time.sleep(delay)

        raise requests.HTTPError(
            f"Discord webhook still rate limited after {MAX_RATE_LIMIT_RETRIES} retries",
            response=resp,
        )


def _retry_after(resp: requests.Response) -> float:
    try:
        return max(float(resp.json().get("retry_after", 1.0)), 0.0)
    except (ValueError, AttributeError, TypeError):
        return 1.0
