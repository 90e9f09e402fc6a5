import pytest
import requests

from anime_episode_bot import catalog as catalog_module
from anime_episode_bot.catalog import JikanClient
from anime_episode_bot.errors import FetchError, FetchErrorKind


class DummyResponse:
    def __init__(self, status_code: int = 200, payload=None, headers=None):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class DummySession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, timeout):
        self.calls.append((url, timeout))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


EPISODES_PAYLOAD = {
    "data": [
        {"mal_id": 1, "title": "The Journey's End", "aired": "2023-09-29T00:00:00+00:00"},
        {"mal_id": 2, "title": "It Didn't Have to Be Magic...", "aired": "2023-09-29T00:00:00+00:00"},
    ],
    "pagination": {"last_visible_page": 1, "has_next_page": False},
}


def test_fetch_episode_list_parses_records():
    session = DummySession([DummyResponse(payload=EPISODES_PAYLOAD)])
    client = JikanClient("https://api.example.com/v4/", timeout=3, session=session)

    records = client.fetch_episode_list(52991)

    assert session.calls == [("https://api.example.com/v4/anime/52991/episodes", 3)]
    assert [r.id for r in records] == [1, 2]
    assert records[0].title == "The Journey's End"
    assert records[1].to_dict()["mal_id"] == 2


def test_fetch_item_metadata_reads_title_and_image():
    payload = {
        "data": {
            "mal_id": 52991,
            "title": "Sousou no Frieren",
            "images": {"jpg": {"image_url": "https://cdn.example.com/frieren.jpg"}},
        }
    }
    client = JikanClient(session=DummySession([DummyResponse(payload=payload)]))

    metadata = client.fetch_item_metadata(52991)

    assert metadata.id == 52991
    assert metadata.title == "Sousou no Frieren"
    assert metadata.image_url == "https://cdn.example.com/frieren.jpg"


def test_fetch_item_metadata_without_image():
    payload = {"data": {"title": "No Art"}}
    client = JikanClient(session=DummySession([DummyResponse(payload=payload)]))

    assert client.fetch_item_metadata(1).image_url is None


def test_fetch_episode_detail():
    payload = {"data": {"mal_id": 2, "title": "Episode two"}}
    session = DummySession([DummyResponse(payload=payload)])
    client = JikanClient("https://api.example.com/v4", session=session)

    record = client.fetch_episode_detail(5, 2)

    assert session.calls[0][0] == "https://api.example.com/v4/anime/5/episodes/2"
    assert record.id == 2


def test_404_is_not_found():
    client = JikanClient(session=DummySession([DummyResponse(status_code=404)]))

    with pytest.raises(FetchError) as excinfo:
        client.fetch_item_metadata(999999)

    assert excinfo.value.kind is FetchErrorKind.NOT_FOUND
    assert excinfo.value.is_not_found
    assert excinfo.value.status_code == 404


@pytest.mark.parametrize(
    "response",
    [
        DummyResponse(status_code=503),
        requests.ConnectionError("connection refused"),
        requests.Timeout("read timed out"),
        DummyResponse(status_code=200, payload=None),
        DummyResponse(status_code=200, payload={"status": 200}),
    ],
)
def test_transport_failures(response):
    client = JikanClient(session=DummySession([response]))

    with pytest.raises(FetchError) as excinfo:
        client.fetch_episode_list(1)

    assert excinfo.value.kind is FetchErrorKind.TRANSPORT


def test_malformed_episode_is_fetch_error():
    payload = {"data": [{"title": "missing id"}]}
    client = JikanClient(session=DummySession([DummyResponse(payload=payload)]))

    with pytest.raises(FetchError):
        client.fetch_episode_list(1)


def test_rate_limit_is_retried(monkeypatch):
    sleeps = []
    monkeypatch.setattr(catalog_module.time, "sleep", sleeps.append)
    session = DummySession(
        [
            DummyResponse(status_code=429, headers={"Retry-After": "2"}),
            DummyResponse(payload=EPISODES_PAYLOAD),
        ]
    )
    client = JikanClient(session=session)

    records = client.fetch_episode_list(1)

    assert len(records) == 2
    assert sleeps == [2.0]


def test_rate_limit_gives_up(monkeypatch):
    monkeypatch.setattr(catalog_module.time, "sleep", lambda seconds: None)
    responses = [DummyResponse(status_code=429) for _ in range(catalog_module.MAX_RATE_LIMIT_RETRIES + 1)]
    client = JikanClient(session=DummySession(responses))

    with pytest.raises(FetchError) as excinfo:
        client.fetch_episode_list(1)

    assert excinfo.value.kind is FetchErrorKind.TRANSPORT
    assert excinfo.value.status_code == 429
