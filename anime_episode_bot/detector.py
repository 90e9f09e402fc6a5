"""Decide whether a freshly fetched episode list contains a new episode."""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

from .models import EpisodeRecord, TrackedItem

LOGGER = logging.getLogger(__name__)


def has_new_episode(
    tracked: TrackedItem, fetched: Sequence[EpisodeRecord]
) -> Tuple[bool, Optional[EpisodeRecord]]:
    """Compare the newest fetched episode against the stored one.

    Args:
        tracked: registry entry for the anime
        fetched: episode list from the catalog, oldest first

    Returns:
        ``(True, latest)`` when the last episode of ``fetched`` differs from
        ``tracked.last_episode_id`` (or nothing was recorded yet), otherwise
        ``(False, None)``. An empty list is never a change.

    Any difference counts, including an older id replacing a newer one.
    """
    if not fetched:
        return False, None

    latest = fetched[-1]
    if tracked.last_episode_id is None or latest.id != tracked.last_episode_id:
        LOGGER.debug(
            "Anime %s: latest episode %s differs from stored %s",
            tracked.id,
            latest.id,
            tracked.last_episode_id,
        )
        return True, latest

    return False, None
