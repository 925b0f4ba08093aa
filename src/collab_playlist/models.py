from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator, Optional, Tuple, Union

# A track whose age_factor exceeds this is rendered with cobweb markers.
STALE_THRESHOLD = 0.99


@dataclass(frozen=True)
class Track:
    """A playable track entry of a playlist."""
    id: str
    name: str
    duration: timedelta
    added_at: Optional[datetime] = None
    added_by: Optional[str] = None  # None when the account is unknown or removed


@dataclass(frozen=True)
class UnsupportedItem:
    """A playlist entry that is not a resolvable track (local file, removed track, episode)."""
    kind: str
    name: str = ""


PlaylistItem = Union[Track, UnsupportedItem]


@dataclass(frozen=True)
class PlaylistSnapshot:
    id: str
    name: str
    items: Tuple[PlaylistItem, ...] = ()

    def tracks(self) -> Iterator[Track]:
        """Iterate over the resolvable tracks, in playlist order."""
        return (item for item in self.items if isinstance(item, Track))


@dataclass(frozen=True)
class PlaylistSummary:
    id: str
    name: str
    collaborative: bool = False
    owner: Optional[str] = None


@dataclass(frozen=True)
class UserProfile:
    id: str
    display_name: Optional[str] = None


@dataclass(frozen=True)
class TrackInfo:
    id: str
    name: str
    duration: timedelta
    relative_size: float
    color: str
    age_factor: float
    user_id: Optional[str] = None

    @property
    def is_stale(self) -> bool:
        return self.age_factor > STALE_THRESHOLD


@dataclass(frozen=True)
class UserInfo:
    user_id: Optional[str]
    name: str
    relative_size: float
    total_duration: timedelta
    track_count: int
    color: str


@dataclass(frozen=True)
class PlaylistInfo:
    """
    Chart-ready view of a playlist.

    `tracks` is partitioned into contiguous runs, one per entry of `users`
    and in the same order, each run `track_count` long.
    """
    id: str
    name: str
    total_duration: timedelta
    tracks: Tuple[TrackInfo, ...] = ()
    users: Tuple[UserInfo, ...] = ()

    def runs(self) -> Iterator[Tuple[UserInfo, Tuple[TrackInfo, ...]]]:
        """Yield each contributor with its run of tracks."""
        start = 0
        for user in self.users:
            end = start + user.track_count
            yield user, self.tracks[start:end]
            start = end
