from typing import Callable, Dict, List, Optional

import pytest

from anime_episode_bot.errors import FetchError, FetchErrorKind
from anime_episode_bot.models import EpisodeRecord, ItemMetadata
from anime_episode_bot.registry import Registry
from anime_episode_bot.tracker import EpisodeTracker


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def wait(self, event, seconds: float) -> bool:
        if event.is_set():
            return True
        self.sleep(seconds)
        return event.is_set()

    def advance(self, seconds: float) -> None:
        self.now += seconds


def episodes(*ids: int) -> List[EpisodeRecord]:
    return [EpisodeRecord(id=i, title=f"Episode {i}", raw={"mal_id": i}) for i in ids]


class FakeCatalog:
    """In-memory catalog; ``failures`` maps an anime id to the error to raise."""

    def __init__(self):
        self.episode_lists: Dict[int, List[EpisodeRecord]] = {}
        self.metadata: Dict[int, ItemMetadata] = {}
        self.failures: Dict[int, FetchError] = {}
        self.list_calls: List[int] = []
        self.on_fetch: Optional[Callable[[int], None]] = None

    def fetch_episode_list(self, item_id):
        self.list_calls.append(item_id)
        if self.on_fetch is not None:
            self.on_fetch(item_id)
        if item_id in self.failures:
            raise self.failures[item_id]
        if item_id not in self.episode_lists:
            raise FetchError("HTTP 404", kind=FetchErrorKind.NOT_FOUND, item_id=item_id)
        return list(self.episode_lists[item_id])

    def fetch_item_metadata(self, item_id):
        if item_id in self.failures:
            raise self.failures[item_id]
        return self.metadata.get(item_id, ItemMetadata(id=item_id, title=f"Anime {item_id}"))

    def fetch_episode_detail(self, item_id, episode_id):
        for episode in self.episode_lists.get(item_id, []):
            if episode.id == episode_id:
                return episode
        raise FetchError("HTTP 404", kind=FetchErrorKind.NOT_FOUND, item_id=item_id)


class RecordingSink:
    def __init__(self):
        self.sent = []

    def send(self, announcement):
        self.sent.append(announcement)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def registry(tmp_path):
    return Registry(tmp_path / "animes.json").load()


@pytest.fixture
def tracker(registry, catalog, sink):
    return EpisodeTracker(registry, catalog, lambda: sink)
