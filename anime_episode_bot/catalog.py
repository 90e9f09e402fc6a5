"""Fetch anime metadata and episodes from the Jikan (MyAnimeList) API."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Protocol

import requests

from .errors import FetchError, FetchErrorKind
from .models import EpisodeRecord, ItemMetadata

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.jikan.moe/v4"
DEFAULT_TIMEOUT = 10.0
MAX_RATE_LIMIT_RETRIES = 3


class CatalogClient(Protocol):
    """What the tracker needs from a catalog backend."""

    def fetch_episode_list(self, item_id: int) -> List[EpisodeRecord]:
        ...

    def fetch_item_metadata(self, item_id: int) -> ItemMetadata:
        ...

    def fetch_episode_detail(self, item_id: int, episode_id: int) -> EpisodeRecord:
        ...


class JikanClient:
    """Catalog client backed by the public Jikan v4 REST API.

    Every request carries a timeout; a timeout, a dropped connection or a
    5xx answer becomes ``FetchError(TRANSPORT)`` and a 4xx answer becomes
    ``FetchError(NOT_FOUND)``.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_episode_list(self, item_id: int) -> List[EpisodeRecord]:
        """Return the episode list oldest first; the last entry is the newest."""
        data = self._get_data(f"/anime/{item_id}/episodes", item_id)
        if not isinstance(data, list):
            raise FetchError(
                f"Unexpected episode list payload for anime {item_id}",
                item_id=item_id,
            )
        try:
            return [EpisodeRecord.from_api(entry) for entry in data]
        except (KeyError, TypeError, ValueError) as exc:
            raise FetchError(f"Malformed episode in list for anime {item_id}", item_id=item_id) from exc

    def fetch_item_metadata(self, item_id: int) -> ItemMetadata:
        data = self._get_data(f"/anime/{item_id}", item_id)
        if not isinstance(data, dict):
            raise FetchError(f"Unexpected metadata payload for anime {item_id}", item_id=item_id)
        return ItemMetadata.from_api(item_id, data)

    def fetch_episode_detail(self, item_id: int, episode_id: int) -> EpisodeRecord:
        data = self._get_data(f"/anime/{item_id}/episodes/{episode_id}", item_id)
        try:
            return EpisodeRecord.from_api(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise FetchError(f"Malformed episode {episode_id} for anime {item_id}", item_id=item_id) from exc

    def _get_data(self, path: str, item_id: int) -> Any:
        payload = self._get_json(self.base_url + path, item_id)
        if not isinstance(payload, dict) or "data" not in payload:
            raise FetchError(f"Missing 'data' in response from {path}", item_id=item_id)
        return payload["data"]

    def _get_json(self, url: str, item_id: int) -> Dict[str, Any]:
        """GET ``url``; waits and retries when Jikan answers 429."""
        attempt = 0
        while True:
            try:
                resp = self.session.get(url, timeout=self.timeout)
            except requests.Timeout as exc:
                raise FetchError(
                    f"Timed out after {self.timeout}s: {url}", item_id=item_id
                ) from exc
            except requests.RequestException as exc:
                raise FetchError(f"Request failed: {url}: {exc}", item_id=item_id) from exc

            if resp.status_code == 429 and attempt < MAX_RATE_LIMIT_RETRIES:
                attempt += 1
                retry_after = _retry_after(resp)
                LOGGER.warning(
                    "Jikan rate limit hit, waiting %.1fs (attempt %d/%d)",
                    retry_after,
                    attempt,
                    MAX_RATE_LIMIT_RETRIES,
                )
                time.sleep(retry_after)
                continue

            if resp.status_code == 429 or resp.status_code >= 500:
                raise FetchError(
                    f"HTTP {resp.status_code} from {url}",
                    item_id=item_id,
                    status_code=resp.status_code,
                )
            if resp.status_code >= 400:
                raise FetchError(
                    f"HTTP {resp.status_code} from {url}",
                    kind=FetchErrorKind.NOT_FOUND,
                    item_id=item_id,
                    status_code=resp.status_code,
                )

            try:
                return resp.json()
            except ValueError as exc:
                raise FetchError(f"Invalid JSON from {url}", item_id=item_id) from exc


def _retry_after(resp: requests.Response) -> float:
    try:
        return max(float(resp.headers.get("Retry-After", 1.0)), 0.0)
    except (TypeError, ValueError):
        return 1.0
