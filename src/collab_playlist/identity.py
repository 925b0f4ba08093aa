"""
Contributor identity resolution.

Resolves the distinct contributor IDs of a playlist to display names,
looking them up concurrently and tolerating per-user failures.
"""
import asyncio
import logging
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Protocol

from .models import PlaylistSnapshot, UserProfile
from .spotify import SpotifyError, SpotifyNotFoundError

logger = logging.getLogger(__name__)

NOT_FOUND_USER_NAME = "Unknown"
FAILED_USER_NAME = "Failed to get user"


class UserLookup(Protocol):
    async def get_user(self, user_id: str) -> UserProfile: ...


def distinct_contributors(user_ids: Iterable[Optional[str]]) -> List[str]:
    """De-duplicate contributor IDs in first-seen order, dropping unknown ones."""
    seen: dict[str, None] = {}
    for user_id in user_ids:
        if user_id:
            seen.setdefault(user_id, None)
    return list(seen)


def playlist_contributors(snapshot: PlaylistSnapshot) -> List[str]:
    """Contributor IDs appearing on the resolvable tracks of a playlist."""
    return distinct_contributors(track.added_by for track in snapshot.tracks())


async def _lookup_name(client: UserLookup, user_id: str) -> str:
    try:
        profile = await client.get_user(user_id)
    except SpotifyNotFoundError:
        logger.warning("User %s not found", user_id)
        return NOT_FOUND_USER_NAME
    except SpotifyError as e:
        logger.warning("Failed to get user %s: %s", user_id, e)
        return FAILED_USER_NAME
    except Exception:
        logger.exception("Unexpected error looking up user %s", user_id)
        return FAILED_USER_NAME

    return profile.display_name or user_id


async def resolve_names(client: UserLookup, user_ids: Iterable[Optional[str]]) -> Mapping[str, str]:
    """
    Resolve contributor IDs to display names.

    Every distinct ID is looked up exactly once and all lookups run
    concurrently. A failed lookup maps to a fallback name instead of
    failing the whole resolution.

    Returns:
        Read-only mapping covering exactly the distinct, non-empty input IDs
    """
    ids = distinct_contributors(user_ids)
    if not ids:
        return MappingProxyType({})

    names = await asyncio.gather(*(_lookup_name(client, user_id) for user_id in ids))
    logger.debug("Resolved %d contributor name(s)", len(ids))
    return MappingProxyType(dict(zip(ids, names)))
