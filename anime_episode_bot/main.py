"""Entrypoint for the anime episode Discord notifier."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import List, Optional

from requests.exceptions import RequestException

from .catalog import JikanClient
from .config import Settings, get_settings
from .errors import CorruptStateError, FetchError, NotFoundError, PersistenceError
from .notifier import DiscordNotifier
from .registry import Registry
from .scheduler import ReconciliationScheduler
from .tracker import EpisodeTracker

LOG_LEVEL_CHOICES = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LOGGER = logging.getLogger(__name__)


def configure_logging(log_level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="anime-episode-bot",
        description="Announce new anime episodes from MyAnimeList on Discord.",
    )
    parser.add_argument("--log-level", choices=LOG_LEVEL_CHOICES, default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Poll tracked anime and announce new episodes")

    add = sub.add_parser("add", help="Track an anime by its MyAnimeList id")
    add.add_argument("id", type=int, help="MyAnimeList anime id")

    latest = sub.add_parser("latest", help="Post the latest episode of an anime")
    latest.add_argument("id", type=int, help="MyAnimeList anime id")
    return parser


def build_tracker(settings: Settings, registry: Registry) -> EpisodeTracker:
    catalog = JikanClient(
        settings.jikan_base_url, timeout=settings.request_timeout_seconds
    )
    return EpisodeTracker(
        registry,
        catalog,
        lambda: DiscordNotifier(
            settings.discord_webhook_url, timeout=settings.request_timeout_seconds
        ),
        default_image_url=settings.default_image_url,
        thumbnail_url=settings.thumbnail_url,
    )


def _fetch_failure_message(exc: FetchError, anime_id: int, action: str) -> str:
    if exc.is_not_found:
        return f"Could not find anime {anime_id}. Check the ID."
    return f"Could not {action}. Wait a few seconds and try again."


def cmd_add(tracker: EpisodeTracker, anime_id: int) -> int:
    try:
        metadata = tracker.add_tracked_item(anime_id)
    except FetchError as exc:
        LOGGER.error("Failed to add anime %s: %s", anime_id, exc)
        print(_fetch_failure_message(exc, anime_id, "add the anime"))
        return 1
    except PersistenceError as exc:
        LOGGER.error("Anime %s added but state not saved: %s", anime_id, exc)
        print("Anime added, but the state file could not be written.")
        return 1

    print(f"Anime {metadata.title} added successfully.")
    return 0


def cmd_latest(tracker: EpisodeTracker, anime_id: int) -> int:
    try:
        episode = tracker.announce_latest(anime_id)
    except NotFoundError:
        print("No episodes found for this anime.")
        return 1
    except FetchError as exc:
        LOGGER.error("Failed to get latest episode of %s: %s", anime_id, exc)
        print(_fetch_failure_message(exc, anime_id, "get the latest episode"))
        return 1
    except RequestException as exc:
        LOGGER.error("Failed to send Discord notification: %s", exc)
        print("Could not post the latest episode. Wait a few seconds and try again.")
        return 1

    print(f"Sent episode {episode.id} of anime {anime_id}.")
    return 0


def cmd_run(settings: Settings, tracker: EpisodeTracker) -> int:
    scheduler = ReconciliationScheduler(
        tracker.registry,
        tracker.catalog,
        tracker,
        interval=settings.poll_interval_seconds,
        item_delay=settings.item_delay_seconds,
    )
    LOGGER.info(
        "Watching %d anime every %.0fs", len(tracker.registry), settings.poll_interval_seconds
    )
    signal.signal(signal.SIGTERM, lambda signum, frame: scheduler.stop())
    try:
        scheduler.run()
    except KeyboardInterrupt:
        LOGGER.info("Interrupted, shutting down")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Run the notifier workflow."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        settings = get_settings()
    except ValueError as exc:
        LOGGER.error("Configuration error: %s", exc)
        return 1

    registry = Registry(settings.state_path)
    try:
        registry.load()
    except CorruptStateError as exc:
        # 기존 상태를 덮어쓰지 않도록 여기서 중단
        LOGGER.error("Refusing to start with a corrupt state file: %s", exc)
        return 1

    tracker = build_tracker(settings, registry)

    if args.command == "add":
        return cmd_add(tracker, args.id)
    if args.command == "latest":
        return cmd_latest(tracker, args.id)
    return cmd_run(settings, tracker)


if __name__ == "__main__":
    sys.exit(main())
