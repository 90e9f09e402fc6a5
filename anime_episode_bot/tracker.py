"""Operations behind the bot commands: track an anime, show its latest episode."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .catalog import CatalogClient
from .errors import NotFoundError
from .models import EpisodeRecord, ItemMetadata, TrackedItem
from .notifier import (
    DEFAULT_IMAGE_URL,
    DEFAULT_THUMBNAIL_URL,
    NotificationSink,
    build_announcement,
)
from .registry import Registry

LOGGER = logging.getLogger(__name__)

SinkProvider = Callable[[], NotificationSink]


class EpisodeTracker:
    """Glue between the registry, the catalog and the notification sink."""

    def __init__(
        self,
        registry: Registry,
        catalog: CatalogClient,
        sink_provider: SinkProvider,
        *,
        default_image_url: str = DEFAULT_IMAGE_URL,
        thumbnail_url: Optional[str] = DEFAULT_THUMBNAIL_URL,
    ) -> None:
        self.registry = registry
        self.catalog = catalog
        self.sink_provider = sink_provider
        self.default_image_url = default_image_url
        self.thumbnail_url = thumbnail_url

    def add_tracked_item(self, item_id: int) -> ItemMetadata:
        """Start tracking ``item_id``, seeded with its current latest episode.

        Re-adding an anime that is already tracked resets it to whatever the
        catalog reports now. Raises FetchError or PersistenceError.
        """
        metadata = self.catalog.fetch_item_metadata(item_id)
        episodes = self.catalog.fetch_episode_list(item_id)

        latest = episodes[-1] if episodes else None
        item = TrackedItem(
            id=item_id,
            last_episode_id=latest.id if latest else None,
            last_episode_data=latest.to_dict() if latest else None,
        )
        self.registry.store(item)
        LOGGER.info(
            "Tracking anime %s (%s), latest episode %s",
            item_id,
            metadata.title,
            item.last_episode_id,
        )
        return metadata

    def query_latest_episode(self, item_id: int) -> EpisodeRecord:
        """Fetch the newest episode live; the registry is not touched."""
        episodes = self.catalog.fetch_episode_list(item_id)
        if not episodes:
            raise NotFoundError(f"No episodes found for anime {item_id}")
        return episodes[-1]

    def announce(self, item_id: int, episode_id: int, sink: NotificationSink) -> None:
        metadata = self.catalog.fetch_item_metadata(item_id)
        episode = self.catalog.fetch_episode_detail(item_id, episode_id)
        sink.send(
            build_announcement(
                metadata,
                episode,
                default_image_url=self.default_image_url,
                thumbnail_url=self.thumbnail_url,
            )
        )

    def announce_latest(self, item_id: int) -> EpisodeRecord:
        """Post the latest episode of ``item_id`` to the destination channel."""
        latest = self.query_latest_episode(item_id)
        self.announce(item_id, latest.id, self.sink_provider())
        return latest
