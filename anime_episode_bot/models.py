"""Data models for the anime episode tracker."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class EpisodeRecord:
    """A single episode as returned by the catalog."""

    id: int
    title: Optional[str] = None
    aired: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "EpisodeRecord":
        return cls(
            id=int(data["mal_id"]),
            title=data.get("title"),
            aired=data.get("aired"),
            raw=dict(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.raw:
            return dict(self.raw)
        return {"mal_id": self.id, "title": self.title, "aired": self.aired}


@dataclass(frozen=True)
class ItemMetadata:
    """Title and artwork of a catalog entry."""

    id: int
    title: str
    image_url: Optional[str] = None

    @classmethod
    def from_api(cls, item_id: int, data: Dict[str, Any]) -> "ItemMetadata":
        images = data.get("images") or {}
        jpg = images.get("jpg") or {}
        return cls(
            id=item_id,
            title=data.get("title") or f"Anime {item_id}",
            image_url=jpg.get("image_url"),
        )


@dataclass(frozen=True)
class TrackedItem:
    """Registry entry: the last episode seen for one anime."""

    id: int
    last_episode_id: Optional[int] = None
    last_episode_data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lastEpisodeId": self.last_episode_id,
            "lastEpisodeData": self.last_episode_data,
        }

    @classmethod
    def from_dict(cls, item_id: int, data: Dict[str, Any]) -> "TrackedItem":
        return cls(
            id=item_id,
            last_episode_id=data.get("lastEpisodeId"),
            last_episode_data=data.get("lastEpisodeData"),
        )


@dataclass(frozen=True)
class Announcement:
    """Payload handed to the notification sink."""

    title: str
    episode_id: int
    image_url: str
    thumbnail_url: Optional[str] = None
    color: int = 0xFF5E01


# ItemResult.status values
UNCHANGED = "unchanged"
ANNOUNCED = "announced"
EMPTY = "empty"
FAILED = "failed"


@dataclass(frozen=True)
class ItemResult:
    """Outcome of reconciling one tracked item during a pass."""

    item_id: int
    status: str
    episode_id: Optional[int] = None
    error: Optional[Exception] = None


@dataclass
class PassResult:
    """Aggregated outcome of one full pass over the registry."""

    started_at: float
    finished_at: Optional[float] = None
    items: List[ItemResult] = field(default_factory=list)

    @property
    def announced(self) -> List[ItemResult]:
        return [r for r in self.items if r.status == ANNOUNCED]

    @property
    def failed(self) -> List[ItemResult]:
        return [r for r in self.items if r.status == FAILED]
