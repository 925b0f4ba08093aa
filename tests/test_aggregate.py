"""
Unit tests for aggregate module.
"""

import math
import re
from datetime import datetime, timedelta, timezone

from collab_playlist import aggregate
from collab_playlist.models import PlaylistSnapshot, Track, UnsupportedItem

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_track(track_id, seconds, added_by=None, days_ago=None):
    added_at = NOW - timedelta(days=days_ago) if days_ago is not None else None
    return Track(
        id=track_id,
        name=f"Song {track_id}",
        duration=timedelta(seconds=seconds),
        added_at=added_at,
        added_by=added_by,
    )


def build(items, names=None):
    snapshot = PlaylistSnapshot(id="pl", name="Road trip", items=tuple(items))
    return aggregate.build_playlist_info(snapshot, names or {}, now=NOW)


class TestRelativeSize:
    """Test the zero-guarded ratio."""

    def test_fraction_of_total(self):
        assert aggregate.relative_size(timedelta(seconds=30), timedelta(seconds=120)) == 0.25

    def test_zero_total_is_zero(self):
        assert aggregate.relative_size(timedelta(0), timedelta(0)) == 0.0


class TestAgeFactor:
    """Test age normalization against the staleness horizon."""

    def test_exactly_at_horizon(self):
        factor = aggregate.age_factor(NOW - timedelta(days=200), NOW)
        assert factor == 1.0

    def test_half_horizon(self):
        factor = aggregate.age_factor(NOW - timedelta(days=100), NOW)
        assert factor == 0.5

    def test_beyond_horizon_is_clamped(self):
        assert aggregate.age_factor(NOW - timedelta(days=900), NOW) == 1.0

    def test_future_timestamp_is_clamped(self):
        assert aggregate.age_factor(NOW + timedelta(days=3), NOW) == 0.0

    def test_missing_timestamp_is_fresh(self):
        assert aggregate.age_factor(None, NOW) == 0.0


class TestContributorColor:
    """Test deterministic contributor colors."""

    def test_same_id_same_color(self):
        assert aggregate.contributor_color("alice") == aggregate.contributor_color("alice")

    def test_hex_format(self):
        assert re.fullmatch(r"#[0-9a-f]{6}", aggregate.contributor_color("alice"))

    def test_unknown_bucket_uses_empty_seed(self):
        assert aggregate.contributor_color(None) == aggregate.contributor_color("")

    def test_colors_are_pinned_across_runs(self):
        """Seeding must not depend on the process (e.g. str hash randomization)."""
        assert aggregate.contributor_color("") == "#da486b"
        assert aggregate.contributor_color(None) == "#da486b"
        assert aggregate.contributor_color("alice") == "#e819cb"

    def test_colors_vary_between_ids(self):
        colors = {aggregate.contributor_color(f"user{i}") for i in range(20)}
        assert len(colors) > 1


class TestBuildPlaylistInfo:
    """Test the full aggregation."""

    def test_users_sorted_by_total_duration(self):
        info = build([
            make_track("a1", 300, "alice"),
            make_track("b1", 100, "bob"),
            make_track("c1", 200, "carol"),
        ])
        assert [u.total_duration for u in info.users] == [
            timedelta(seconds=100), timedelta(seconds=200), timedelta(seconds=300),
        ]
        assert [u.user_id for u in info.users] == ["bob", "carol", "alice"]

    def test_tracks_sorted_within_user(self):
        info = build([
            make_track("t1", 50, "alice"),
            make_track("t2", 10, "alice"),
            make_track("t3", 30, "alice"),
        ])
        assert [t.duration.total_seconds() for t in info.tracks] == [10, 30, 50]

    def test_equal_durations_keep_playlist_order(self):
        info = build([
            make_track("x", 60, "alice"),
            make_track("y", 60, "alice"),
            make_track("z", 60, "alice"),
        ])
        assert [t.id for t in info.tracks] == ["x", "y", "z"]

    def test_equal_user_totals_keep_first_seen_order(self):
        info = build([
            make_track("c1", 60, "carol"),
            make_track("a1", 60, "alice"),
            make_track("b1", 60, "bob"),
        ])
        assert [u.user_id for u in info.users] == ["carol", "alice", "bob"]

    def test_partition_invariant(self):
        info = build([
            make_track("a1", 120, "alice"),
            make_track("b1", 30, "bob"),
            make_track("a2", 90, "alice"),
            make_track("u1", 45),
            make_track("b2", 200, "bob"),
        ])
        assert sum(u.track_count for u in info.users) == len(info.tracks)

        flattened = []
        for user, run in info.runs():
            assert all(t.user_id == user.user_id for t in run)
            assert all(t.color == user.color for t in run)
            flattened.extend(run)
        assert tuple(flattened) == info.tracks

    def test_conservation(self):
        info = build([
            make_track("a1", 187, "alice"),
            make_track("b1", 241, "bob"),
            make_track("a2", 173, "alice"),
            make_track("c1", 299, "carol"),
        ])
        assert info.total_duration == timedelta(seconds=900)
        assert sum((t.duration for t in info.tracks), timedelta(0)) == info.total_duration
        assert sum((u.total_duration for u in info.users), timedelta(0)) == info.total_duration
        assert math.isclose(sum(t.relative_size for t in info.tracks), 1.0, rel_tol=1e-9)
        assert math.isclose(sum(u.relative_size for u in info.users), 1.0, rel_tol=1e-9)

    def test_relative_sizes(self):
        info = build([make_track("a1", 75, "alice"), make_track("b1", 225, "bob")])
        sizes = {t.id: t.relative_size for t in info.tracks}
        assert sizes == {"a1": 0.25, "b1": 0.75}

    def test_zero_duration_playlist(self):
        info = build([make_track("a1", 0, "alice"), make_track("b1", 0, "bob")])
        assert info.total_duration == timedelta(0)
        assert all(t.relative_size == 0.0 for t in info.tracks)
        assert all(u.relative_size == 0.0 for u in info.users)
        assert not any(math.isnan(t.relative_size) for t in info.tracks)

    def test_empty_playlist(self):
        info = build([])
        assert info.total_duration == timedelta(0)
        assert info.tracks == ()
        assert info.users == ()

    def test_unsupported_items_are_excluded(self):
        info = build([
            make_track("a1", 100, "alice"),
            UnsupportedItem(kind="local", name="bootleg.mp3"),
            UnsupportedItem(kind="removed"),
            make_track("a2", 100, "alice"),
        ])
        assert info.total_duration == timedelta(seconds=200)
        assert [t.id for t in info.tracks] == ["a1", "a2"]
        assert info.users[0].track_count == 2

    def test_unknown_contributor_bucket(self):
        info = build([make_track("u1", 100), make_track("a1", 300, "alice")], {"alice": "Alice"})
        unknown = info.users[0]
        assert unknown.user_id is None
        assert unknown.name == "Unknown"
        assert unknown.color == aggregate.contributor_color(None)
        assert unknown.relative_size == 0.25
        assert info.tracks[0].user_id is None

    def test_names_from_name_map(self):
        info = build([make_track("a1", 100, "alice")], {"alice": "Alice A."})
        assert info.users[0].name == "Alice A."

    def test_missing_name_falls_back_to_id(self):
        info = build([make_track("a1", 100, "alice")], {})
        assert info.users[0].name == "alice"

    def test_staleness(self):
        info = build([
            make_track("old", 100, "alice", days_ago=200),
            make_track("mid", 200, "alice", days_ago=100),
        ])
        by_id = {t.id: t for t in info.tracks}
        assert by_id["old"].age_factor == 1.0
        assert by_id["old"].is_stale
        assert by_id["mid"].age_factor == 0.5
        assert not by_id["mid"].is_stale

    def test_deterministic(self):
        items = [
            make_track("a1", 120, "alice", days_ago=12),
            make_track("b1", 30, "bob", days_ago=300),
            make_track("u1", 45),
        ]
        names = {"alice": "Alice", "bob": "Bob"}
        first = build(items, names)
        second = build(items, names)
        assert first == second
        assert repr(first) == repr(second)
