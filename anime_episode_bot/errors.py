"""Exceptions raised by the tracker and its collaborators."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class FetchErrorKind(str, Enum):
    TRANSPORT = "transport"
    NOT_FOUND = "not-found"


class FetchError(Exception):
    """A catalog lookup failed.

    ``kind`` tells a dead network (or a timeout, or a 5xx) apart from the
    catalog answering that the item does not exist.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: FetchErrorKind = FetchErrorKind.TRANSPORT,
        item_id: Optional[int] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.item_id = item_id
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.kind is FetchErrorKind.NOT_FOUND


class CorruptStateError(Exception):
    """The state file exists but is not a valid registry document."""


class PersistenceError(OSError):
    """Writing the state file failed."""


class NotFoundError(LookupError):
    """The catalog has no episodes for the requested anime."""
