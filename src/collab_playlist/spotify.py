"""
Spotify API client module.
Fetches playlists, playlist items and user profiles from Spotify and converts
them to the collab_playlist data model.
"""
import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional, Tuple, TypeVar

import spotipy
from requests.exceptions import RequestException

from . import config
from .models import PlaylistItem, PlaylistSnapshot, PlaylistSummary, Track, UnsupportedItem, UserProfile

logger = logging.getLogger(__name__)

# Spotify API maximum page sizes
PLAYLIST_ITEMS_PAGE_SIZE = 100
USER_PLAYLISTS_PAGE_SIZE = 50

PLAYLIST_ITEM_FIELDS = (
    "items(added_at,added_by(id),is_local,"
    "track(id,name,type,duration_ms,is_local)),next,total"
)

# Spotify reports this for items added before it tracked add dates.
_EPOCH_PLACEHOLDER = datetime(1970, 1, 1, tzinfo=timezone.utc)

T = TypeVar("T")


class SpotifyError(Exception):
    """Raised when Spotify API operations fail."""
    pass


class SpotifyNotConfiguredError(SpotifyError):
    """Raised when Spotify credentials are not set."""
    pass


class SpotifyNotFoundError(SpotifyError):
    """Raised when the requested Spotify resource does not exist."""
    pass


def parse_spotify_url(url: str) -> Optional[Tuple[str, str]]:
    """
    Parse a Spotify URL, URI or bare playlist ID and extract type and ID.

    Returns:
        Tuple of (type, id) where type is 'track', 'album', 'playlist' or 'user'
        None if not a valid Spotify URL/URI
    """
    # URL patterns
    url_pattern = r'https?://open\.spotify\.com/(?:intl-[a-z]+/)?(track|album|playlist|user)/([a-zA-Z0-9]+)'
    # URI pattern: spotify:type:id
    uri_pattern = r'spotify:(track|album|playlist|user):([a-zA-Z0-9]+)'

    # Try URL pattern first
    match = re.search(url_pattern, url)
    if match:
        return match.group(1), match.group(2)

    # Try URI pattern
    match = re.search(uri_pattern, url)
    if match:
        return match.group(1), match.group(2)

    # Bare base62 IDs are taken as playlists
    if re.fullmatch(r'[a-zA-Z0-9]{22}', url.strip()):
        return "playlist", url.strip()

    return None


def parse_added_at(value: Optional[str]) -> Optional[datetime]:
    """Parse Spotify's ISO-8601 `added_at`; placeholders and junk become None."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable added_at %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    if parsed == _EPOCH_PLACEHOLDER:
        return None
    return parsed


def parse_playlist_item(item: Optional[dict]) -> PlaylistItem:
    """Convert one raw `playlist_items` entry to a Track or UnsupportedItem."""
    if not item:
        return UnsupportedItem(kind="removed")

    track_data = item.get('track')
    if not track_data:
        return UnsupportedItem(kind="removed")

    name = track_data.get('name') or ""

    # Skip local files
    if item.get('is_local') or track_data.get('is_local'):
        return UnsupportedItem(kind="local", name=name)

    item_type = track_data.get('type', 'track')
    if item_type != 'track':
        return UnsupportedItem(kind=item_type, name=name)

    track_id = track_data.get('id')
    duration_ms = track_data.get('duration_ms')
    if not track_id or not isinstance(duration_ms, int) or duration_ms < 0:
        return UnsupportedItem(kind="malformed", name=name)

    added_by = (item.get('added_by') or {}).get('id') or None

    return Track(
        id=track_id,
        name=name,
        duration=timedelta(milliseconds=duration_ms),
        added_at=parse_added_at(item.get('added_at')),
        added_by=added_by,
    )


def _translate_error(e: Exception, what: str) -> SpotifyError:
    if isinstance(e, spotipy.SpotifyException) and e.http_status == 404:
        return SpotifyNotFoundError(f"{what} not found")
    return SpotifyError(f"Failed to fetch {what}: {e}")


class SpotifyPlaylistClient:
    """Async facade over a `spotipy.Spotify` instance."""

    def __init__(self, sp: spotipy.Spotify) -> None:
        self._sp = sp

    @property
    def auth_manager(self) -> Any:
        return self._sp.auth_manager

    async def _call(self, fetch: Callable[[], T], what: str) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fetch)
        except SpotifyError:
            raise
        except (spotipy.SpotifyException, spotipy.SpotifyOauthError, RequestException) as e:
            raise _translate_error(e, what) from e
        except Exception as e:
            # Unexpected response shapes surface as fetch failures too.
            logger.exception("Unexpected error while fetching %s", what)
            raise SpotifyError(f"Failed to fetch {what}: {e}") from e

    async def get_playlist(self, playlist_id: str) -> PlaylistSnapshot:
        """Fetch a playlist with all of its items, following pagination."""

        def _fetch() -> PlaylistSnapshot:
            playlist_info = self._sp.playlist(playlist_id, fields='name')
            playlist_name = playlist_info.get('name') or 'Unknown Playlist'

            items: List[PlaylistItem] = []
            offset = 0

            while True:
                results = self._sp.playlist_items(
                    playlist_id,
                    fields=PLAYLIST_ITEM_FIELDS,
                    limit=PLAYLIST_ITEMS_PAGE_SIZE,
                    offset=offset,
                    additional_types=('track',),
                )
                page = results.get('items') or []
                items.extend(parse_playlist_item(item) for item in page)
                offset += len(page)

                if not page or not results.get('next'):
                    break

            return PlaylistSnapshot(id=playlist_id, name=playlist_name, items=tuple(items))

        snapshot = await self._call(_fetch, f"playlist {playlist_id}")
        logger.info(
            "Fetched playlist %s (%r): %d items", playlist_id, snapshot.name, len(snapshot.items)
        )
        return snapshot

    async def get_user(self, user_id: str) -> UserProfile:
        """Fetch a user's public profile."""

        def _fetch() -> UserProfile:
            data = self._sp.user(user_id) or {}
            return UserProfile(id=data.get('id') or user_id, display_name=data.get('display_name'))

        return await self._call(_fetch, f"user {user_id}")

    async def list_playlists(self) -> List[PlaylistSummary]:
        """List the current user's playlists, following pagination."""

        def _fetch() -> List[PlaylistSummary]:
            playlists: List[PlaylistSummary] = []
            offset = 0

            while True:
                results = self._sp.current_user_playlists(limit=USER_PLAYLISTS_PAGE_SIZE, offset=offset)
                page = results.get('items') or []
                for data in page:
                    if not data:
                        continue
                    owner = data.get('owner') or {}
                    playlists.append(PlaylistSummary(
                        id=data['id'],
                        name=data.get('name') or "",
                        collaborative=bool(data.get('collaborative')),
                        owner=owner.get('display_name') or owner.get('id'),
                    ))
                offset += len(page)

                if not page or not results.get('next'):
                    break

            return playlists

        return await self._call(_fetch, "playlists")


def make_client(auth_manager: Any, requests_timeout: Optional[float] = None) -> SpotifyPlaylistClient:
    """Create a SpotifyPlaylistClient from a spotipy auth manager."""
    if auth_manager is None:
        raise SpotifyNotConfiguredError("No Spotify auth manager provided.")
    if requests_timeout is None:
        requests_timeout = config.SPOTIFY_REQUEST_TIMEOUT_SEC
    sp = spotipy.Spotify(auth_manager=auth_manager, requests_timeout=requests_timeout)
    return SpotifyPlaylistClient(sp)
