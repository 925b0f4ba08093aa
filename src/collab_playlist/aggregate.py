"""
Playlist contribution aggregation.

Turns a fetched playlist and a contributor name map into a PlaylistInfo:
tracks grouped by contributor, proportionally sized, colored per contributor
and aged against a fixed staleness horizon.

Ordering:
- tracks within a contributor by ascending duration
- contributors by ascending total duration
Both sorts are stable, so ties keep playlist encounter order.
"""
import colorsys
import logging
import random
from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Optional, Tuple

from .models import PlaylistInfo, PlaylistSnapshot, Track, TrackInfo, UserInfo

logger = logging.getLogger(__name__)

STALENESS_HORIZON = timedelta(days=200)
UNKNOWN_USER_NAME = "Unknown"

_ZERO = timedelta(0)


def relative_size(part: timedelta, total: timedelta) -> float:
    """Fraction of `total`; 0.0 when the total is zero."""
    if total <= _ZERO:
        return 0.0
    return part / total


def age_factor(added_at: Optional[datetime], now: datetime) -> float:
    """Age normalized to the staleness horizon, clamped to [0, 1]."""
    if added_at is None:
        return 0.0
    factor = (now - added_at) / STALENESS_HORIZON
    return min(max(factor, 0.0), 1.0)


def contributor_color(user_id: Optional[str]) -> str:
    """Stable `#rrggbb` color seeded by the contributor ID ("" for unknown)."""
    rng = random.Random(user_id or "")
    hue = rng.random()
    lightness = rng.uniform(0.45, 0.65)
    saturation = rng.uniform(0.55, 0.85)
    r, g, b = colorsys.hls_to_rgb(hue, lightness, saturation)
    return "#{:02x}{:02x}{:02x}".format(round(r * 255), round(g * 255), round(b * 255))


def _display_name(user_id: Optional[str], names: Mapping[str, str]) -> str:
    if user_id is None:
        return UNKNOWN_USER_NAME
    return names.get(user_id) or user_id


def build_playlist_info(
    snapshot: PlaylistSnapshot,
    names: Mapping[str, str],
    now: datetime,
) -> PlaylistInfo:
    """
    Aggregate a playlist into its chart-ready form.

    Args:
        snapshot: Fetched playlist; non-track items are excluded from everything
        names: Contributor ID -> display name
        now: Reference time for track ages (timezone-aware)

    Returns:
        PlaylistInfo whose track sequence is grouped in user order
    """
    # Filter and total, in playlist order
    total_duration = _ZERO
    groups: Dict[Optional[str], List[Track]] = {}
    skipped = 0

    for item in snapshot.items:
        if not isinstance(item, Track):
            skipped += 1
            continue
        total_duration += item.duration
        groups.setdefault(item.added_by or None, []).append(item)

    if skipped:
        logger.debug("Excluded %d unsupported item(s) from playlist %s", skipped, snapshot.id)

    users: List[Tuple[UserInfo, List[TrackInfo]]] = []
    for user_id, tracks in groups.items():
        color = contributor_color(user_id)
        user_total = sum((track.duration for track in tracks), _ZERO)

        track_infos = [
            TrackInfo(
                id=track.id,
                name=track.name,
                duration=track.duration,
                relative_size=relative_size(track.duration, total_duration),
                color=color,
                age_factor=age_factor(track.added_at, now),
                user_id=user_id,
            )
            for track in sorted(tracks, key=lambda t: t.duration)
        ]

        user_info = UserInfo(
            user_id=user_id,
            name=_display_name(user_id, names),
            relative_size=relative_size(user_total, total_duration),
            total_duration=user_total,
            track_count=len(track_infos),
            color=color,
        )
        users.append((user_info, track_infos))

    users.sort(key=lambda entry: entry[0].total_duration)

    return PlaylistInfo(
        id=snapshot.id,
        name=snapshot.name,
        total_duration=total_duration,
        tracks=tuple(info for _, track_infos in users for info in track_infos),
        users=tuple(user_info for user_info, _ in users),
    )
