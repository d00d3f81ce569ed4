"""Messages the navigator consumes and effects it emits."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..ingestion.interfaces import FetchResult


# Messages

@dataclass(frozen=True)
class Open:
    index: int


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class Prev:
    pass


@dataclass(frozen=True)
class MoveCursor:
    delta: int


@dataclass(frozen=True)
class ToggleRead:
    pass


@dataclass(frozen=True)
class ToggleFavourite:
    pass


@dataclass(frozen=True)
class ToggleShowRead:
    pass


@dataclass(frozen=True)
class ToggleShowFavourites:
    pass


@dataclass(frozen=True)
class MarkAllRead:
    pass


@dataclass(frozen=True)
class SetQuery:
    query: str


@dataclass(frozen=True)
class ClearQuery:
    pass


@dataclass(frozen=True)
class RequestRefresh:
    pass


@dataclass(frozen=True)
class RefreshTick:
    now: datetime


@dataclass(frozen=True)
class RefreshFetched:
    result: FetchResult
    finished_at: Optional[datetime] = None


@dataclass(frozen=True)
class RefreshFailed:
    error: str


@dataclass(frozen=True)
class OpenLink:
    pass


@dataclass(frozen=True)
class Quit:
    pass


# Effects

@dataclass(frozen=True)
class StartRefresh:
    """Run the network half of a refresh and post the outcome back."""


@dataclass(frozen=True)
class LaunchUrl:
    url: str
