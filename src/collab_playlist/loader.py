"""
Playlist loading cycle: fetch -> resolve contributor names -> aggregate.

Each cycle carries a generation token taken when it starts. A finished cycle
publishes only if no newer cycle has started since, so a slow fetch for a
previously selected playlist never overwrites the current one.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Protocol

from .aggregate import build_playlist_info
from .identity import playlist_contributors, resolve_names
from .models import PlaylistInfo, PlaylistSnapshot, UserProfile
from .spotify import SpotifyError

logger = logging.getLogger(__name__)


class PlaylistSource(Protocol):
    async def get_playlist(self, playlist_id: str) -> PlaylistSnapshot: ...

    async def get_user(self, user_id: str) -> UserProfile: ...


class LoadState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlaylistLoader:
    """Holds the visible PlaylistInfo for the currently requested playlist."""

    def __init__(self, client: PlaylistSource, clock: Callable[[], datetime] = utcnow) -> None:
        self._client = client
        self._clock = clock
        self._generation = 0

        self.playlist_id: Optional[str] = None
        self.state = LoadState.IDLE
        self.info: Optional[PlaylistInfo] = None
        self.error: Optional[str] = None

    @property
    def generation(self) -> int:
        return self._generation

    def _is_current(self, token: int) -> bool:
        return token == self._generation

    async def load(self, playlist_id: str) -> Optional[PlaylistInfo]:
        """
        Run one full cycle for `playlist_id`.

        Returns:
            The published PlaylistInfo, or None if the fetch failed or a newer
            request superseded this one
        """
        self._generation += 1
        token = self._generation

        self.playlist_id = playlist_id
        self.state = LoadState.LOADING
        self.info = None
        self.error = None

        try:
            snapshot = await self._client.get_playlist(playlist_id)
        except SpotifyError as e:
            if not self._is_current(token):
                logger.debug("Discarding stale failure for playlist %s (request %d)", playlist_id, token)
                return None
            logger.error("Failed to load playlist %s: %s", playlist_id, e)
            self.state = LoadState.FAILED
            self.error = str(e)
            return None

        names = await resolve_names(self._client, playlist_contributors(snapshot))
        info = build_playlist_info(snapshot, names, now=self._clock())

        # Checked at publish time; a newer request may have started meanwhile.
        if not self._is_current(token):
            logger.debug("Discarding stale result for playlist %s (request %d)", playlist_id, token)
            return None

        self.state = LoadState.READY
        self.info = info
        logger.info(
            "Loaded playlist %s: %d tracks from %d contributor(s)",
            playlist_id, len(info.tracks), len(info.users),
        )
        return info

    async def select(self, playlist_id: str) -> Optional[PlaylistInfo]:
        """Load `playlist_id` unless it is already the requested playlist."""
        if playlist_id == self.playlist_id and self.state != LoadState.IDLE:
            return self.info
        return await self.load(playlist_id)

    async def reload(self) -> Optional[PlaylistInfo]:
        """Recompute the current playlist from a fresh fetch."""
        if self.playlist_id is None:
            return None
        return await self.load(self.playlist_id)
